"""
How Sitter Backend — Demo Data
================================

What:  Fills an empty database with a demo homeowner, two sitters and two
       available listings.
Who:   Developers: `python -m howsitter.seed` (after `alembic upgrade head`).

Nothing is written when the users table already has rows. Every demo
account uses the password "password123".
"""

import asyncio
import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.database import async_session_factory, dispose_engine
from howsitter.models.property import PROPERTY_AVAILABLE, Property, PropertyAmenity
from howsitter.models.user import ROLE_HOMEOWNER, ROLE_SITTER, SitterProfile, User
from howsitter.security import hash_password

logger = logging.getLogger("howsitter.seed")

DEMO_PASSWORD = "password123"

SITTERS = [
    {
        "email": "maria@test.com",
        "name": "Maria Silva",
        "country": "Brazil",
        "bio": "Experienced house sitter with 5 years of experience",
        "rating": Decimal("4.90"),
        "total_reviews": 42,
        "experience_years": 5,
    },
    {
        "email": "james@test.com",
        "name": "James Wilson",
        "country": "USA",
        "bio": "Responsible caretaker with background in property management",
        "rating": Decimal("4.80"),
        "total_reviews": 35,
        "experience_years": 3,
    },
]

PROPERTIES = [
    {
        "title": "Luxury Villa with Pool",
        "description": (
            "Beautiful luxury villa with swimming pool, garden, and modern amenities. "
            "Perfect for long-term stays."
        ),
        "property_type": "villa",
        "bedrooms": 4,
        "bathrooms": 3,
        "location": "Sentosa Cove",
        "city": "Singapore",
        "country": "Singapore",
        "price_per_month": Decimal("3500"),
        "security_deposit": Decimal("700"),
        "amenities": ["pool", "garden", "wifi", "parking", "ac", "balcony"],
    },
    {
        "title": "Modern City Apartment",
        "description": (
            "Stylish apartment in the heart of the city with great views and "
            "convenient location."
        ),
        "property_type": "apartment",
        "bedrooms": 2,
        "bathrooms": 1,
        "location": "Orchard Road",
        "city": "Singapore",
        "country": "Singapore",
        "price_per_month": Decimal("2200"),
        "security_deposit": Decimal("500"),
        "amenities": ["wifi", "gym", "ac", "balcony", "security"],
    },
]


async def seed(db: AsyncSession) -> bool:
    """Insert the demo rows. Returns False when the database already has users."""
    count = (await db.execute(select(func.count(User.id)))).scalar_one()
    if count:
        logger.info("Database already has %d users; skipping seed", count)
        return False

    password_hash = hash_password(DEMO_PASSWORD)

    homeowner = User(
        email="homeowner@test.com",
        password_hash=password_hash,
        name="John Homeowner",
        role=ROLE_HOMEOWNER,
        country="Singapore",
    )
    db.add(homeowner)

    for data in SITTERS:
        sitter = User(
            email=data["email"],
            password_hash=password_hash,
            name=data["name"],
            role=ROLE_SITTER,
            country=data["country"],
            bio=data["bio"],
        )
        db.add(sitter)
        await db.flush()
        db.add(
            SitterProfile(
                user_id=sitter.id,
                rating=data["rating"],
                total_reviews=data["total_reviews"],
                experience_years=data["experience_years"],
            )
        )

    await db.flush()

    for data in PROPERTIES:
        fields = {k: v for k, v in data.items() if k != "amenities"}
        prop = Property(homeowner_id=homeowner.id, status=PROPERTY_AVAILABLE, **fields)
        db.add(prop)
        await db.flush()
        db.add_all(PropertyAmenity(property_id=prop.id, amenity=a) for a in data["amenities"])

    await db.flush()
    logger.info(
        "Seeded 1 homeowner, %d sitters and %d properties", len(SITTERS), len(PROPERTIES)
    )
    return True


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    try:
        async with async_session_factory() as session:
            async with session.begin():
                await seed(session)
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
