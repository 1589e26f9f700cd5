"""
How Sitter Backend — Services Layer
=====================================

Business rules between the routes (HTTP) and the database.

Service Inventory:
    - availability:          date-range evaluation shared by the check
                             endpoint and booking creation
    - ArrangementService:    booking creation, status transitions, listing
    - MessageService:        arrangement message threads
    - PropertyService:       listing CRUD, browse filters, geo search, stats,
                             saved properties
    - ImageService:          image validation, storage and ordering
    - AuthService:           registration, login, profiles
    - SitterService:         sitter directory

Services only flush; get_db_session commits or rolls back the request's
transaction as a whole.
"""
