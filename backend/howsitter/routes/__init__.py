"""
How Sitter Backend — API Routes Package
=========================================

Route Inventory:
    - auth.py:          /api/auth/register, /api/auth/login, /api/auth/verify,
                        /api/auth/change-password, /api/profile
    - properties.py:    /api/properties (browse, CRUD, images, availability,
                        stats, location search, my-properties), /api/saved-properties
    - arrangements.py:  /api/bookings, /api/arrangements (+ status, messages)
    - sitters.py:       /api/sitters
    - files.py:         /api/files/{path}
    - health.py:        /health

Routes stay thin: parse the request, resolve the caller, call a service,
shape the response. Business rules live in howsitter.services.
"""
