"""
How Sitter Backend — Demo Seed Tests
======================================
"""

import pytest
from sqlalchemy import func, select

from howsitter.models.property import Property, PropertyAmenity
from howsitter.models.user import SitterProfile, User
from howsitter.security import verify_password
from howsitter.seed import DEMO_PASSWORD, seed


@pytest.mark.asyncio
async def test_seed_fills_empty_database(db_session):
    assert await seed(db_session) is True
    await db_session.commit()

    users = (await db_session.execute(select(User).order_by(User.email))).scalars().all()
    assert [u.email for u in users] == ["homeowner@test.com", "james@test.com", "maria@test.com"]
    assert verify_password(DEMO_PASSWORD, users[0].password_hash)

    profiles = (await db_session.execute(select(func.count(SitterProfile.id)))).scalar_one()
    assert profiles == 2

    titles = (await db_session.execute(select(Property.title, Property.status))).all()
    assert sorted(titles) == [
        ("Luxury Villa with Pool", "available"),
        ("Modern City Apartment", "available"),
    ]
    amenities = (await db_session.execute(select(func.count(PropertyAmenity.id)))).scalar_one()
    assert amenities == 11


@pytest.mark.asyncio
async def test_seed_skips_populated_database(db_session, homeowner):
    assert await seed(db_session) is False
    count = (await db_session.execute(select(func.count(User.id)))).scalar_one()
    assert count == 1
