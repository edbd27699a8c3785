"""Script to create sample inspectors for development."""

import asyncio
from datetime import timedelta

from src.inspector_dispatch.application.services.inspector_service import (
    CertificationInput,
    CreateInspectorCommand,
    RecordDrugTestCommand
)
from src.inspector_dispatch.domain.entities.inspector import InspectorStatus
from src.inspector_dispatch.domain.exceptions import DuplicateBadgeNumber
from src.inspector_dispatch.infrastructure.services import DatabaseServiceFactory
from src.inspector_dispatch.presentation.api.config import get_settings

SEED_USER_ID = 1

SAMPLE_INSPECTORS = [
    {
        "first_name": "Maria",
        "last_name": "Alvarez",
        "badge_number": "TX-1001",
        "latitude": 29.7604,
        "longitude": -95.3698,
        "certifications": [("API 510", "American Petroleum Institute"), ("OSHA 30", "OSHA")],
        "test_kit_id": "DT-2024-0001",
        "test_age_days": 10,
    },
    {
        "first_name": "Dev",
        "last_name": "Patel",
        "badge_number": "TX-1002",
        "latitude": 29.9511,
        "longitude": -95.3318,
        "certifications": [("API 570", "American Petroleum Institute")],
        "test_kit_id": "DT-2024-0002",
        "test_age_days": 45,
    },
    {
        "first_name": "Sam",
        "last_name": "O'Connor",
        "badge_number": "TX-1003",
        "latitude": 30.2672,
        "longitude": -97.7431,
        "certifications": [("OSHA 30", "OSHA")],
        "test_kit_id": "DT-2024-0003",
        "test_age_days": 120,
    },
]


async def seed_inspectors():
    """Create sample inspectors, each with one passing drug test."""
    factory = DatabaseServiceFactory(get_settings())
    await factory.initialize()

    try:
        for sample in SAMPLE_INSPECTORS:
            command = CreateInspectorCommand(
                first_name=sample["first_name"],
                last_name=sample["last_name"],
                badge_number=sample["badge_number"],
                latitude=sample["latitude"],
                longitude=sample["longitude"],
                requesting_user_id=SEED_USER_ID,
                status=InspectorStatus.AVAILABLE,
                certifications=tuple(
                    CertificationInput(name, authority) for name, authority in sample["certifications"]
                )
            )

            async with factory.get_inspector_service() as inspector_service:
                try:
                    inspector = await inspector_service.create_inspector(command)
                except DuplicateBadgeNumber:
                    print(f"Inspector {sample['badge_number']} already exists")
                    continue

                await inspector_service.record_drug_test(RecordDrugTestCommand(
                    inspector_id=inspector.id,
                    test_kit_id=sample["test_kit_id"],
                    test_type="Standard Panel",
                    test_date=factory.clock.now() - timedelta(days=sample["test_age_days"]),
                    requesting_user_id=SEED_USER_ID,
                    result=True
                ))
                print(f"Created inspector {inspector.badge_number} (id={inspector.id})")
    finally:
        await factory.shutdown()


if __name__ == "__main__":
    asyncio.run(seed_inspectors())
