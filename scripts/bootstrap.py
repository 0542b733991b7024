#!/usr/bin/env python3
"""Bootstrap script for the lodging booking engine."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from sqlalchemy import func, select

from lodging.core.database import async_session_factory, close_db, init_db
from lodging.models.catalog import Property
from lodging.schemas.catalog import CreatePropertyRequest, CreateRatePlanRequest, CreateRoomTypeRequest
from lodging.schemas.policy import CancellationTierSchema, CreatePolicyRequest
from lodging.services.cancellation_policy import CancellationPolicyService
from lodging.services.catalog_service import CatalogService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def setup_database():
    """Create every table that does not exist yet."""
    logger.info("Setting up database...")
    await init_db()
    logger.info("Database schema ready")


async def create_sample_data():
    """Seed one property with a room type, a rate plan and a tiered cancellation policy."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing = await db.execute(select(func.count()).select_from(Property))
        if existing.scalar_one() > 0:
            logger.info("Sample data already exists, skipping...")
            return

        catalog = CatalogService(db)
        policies = CancellationPolicyService(db)

        prop = await catalog.create_property(CreatePropertyRequest(name="Harbour View Inn", currency="INR"))
        deluxe = await catalog.create_room_type(
            CreateRoomTypeRequest(
                property_id=prop.id,
                name="Deluxe Double",
                base_capacity=12,
                base_rate=450000,  # 4500.00 INR
                max_occupancy=2,
            )
        )
        await catalog.create_rate_plan(
            CreateRatePlanRequest(room_type_id=deluxe.id, name="Best Available Rate", nightly_rate=420000)
        )
        await policies.create_policy(
            CreatePolicyRequest(
                property_id=prop.id,
                name="Standard",
                tiers=[
                    CancellationTierSchema(hours_before=72, fee_percent=25),
                    CancellationTierSchema(hours_before=24, fee_percent=50),
                ],
            )
        )

    logger.info("Sample data created", extra={"property_id": str(prop.id), "room_type_id": str(deluxe.id)})


async def main():
    """Main bootstrap function."""
    logger.info("Starting lodging booking engine bootstrap...")

    try:
        await setup_database()
        await create_sample_data()
    finally:
        await close_db()

    logger.info("Bootstrap completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn lodging.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
