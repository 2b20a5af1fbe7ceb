"""
Seed the database with a demo attraction.

Run with: python -m scripts.seed_data
"""

import asyncio
import uuid
from datetime import datetime, time, timedelta
from decimal import Decimal

import pytz
from sqlalchemy import select

from admission.database import async_session_maker, init_db
from admission.models import QUEUE_CONFIG_DEFAULTS, Attraction, QueueConfig, TicketType, TimeSlot

# Fixed so tokens minted for the demo keep working across reseeds
DEMO_ORG_ID = uuid.UUID("5d0c4e2a-7b1f-4c3e-9a6d-2f8e1b0c9d41")

DEMO_ATTRACTION = {
    "name": "Haunted Hollow Manor",
    "slug": "haunted-hollow",
    "timezone": "America/New_York",
}

TICKET_TYPES = [
    {"name": "General Admission", "price": Decimal("29.99"), "max_per_order": 10},
    {"name": "Fast Pass", "price": Decimal("49.99"), "max_per_order": 6},
    {"name": "VIP Tour", "price": Decimal("89.00"), "min_per_order": 2, "max_per_order": 4},
]

# Evening slots, venue-local time
FIRST_SLOT = time(18, 0)
LAST_SLOT = time(23, 30)
SLOT_MINUTES = 30
SLOT_CAPACITY = 120


def slot_times() -> list[tuple[time, time]]:
    day = datetime(2000, 1, 1)
    start = datetime.combine(day, FIRST_SLOT)
    last = datetime.combine(day, LAST_SLOT)
    slots = []
    while start <= last:
        end = start + timedelta(minutes=SLOT_MINUTES)
        slots.append((start.time(), end.time()))
        start = end
    return slots


async def seed_demo(days: int = 7) -> None:
    async with async_session_maker() as session:
        # ====================================================================
        # 1. Attraction
        # ====================================================================
        result = await session.execute(
            select(Attraction).where(Attraction.slug == DEMO_ATTRACTION["slug"])
        )
        attraction = result.scalar_one_or_none()

        if attraction:
            print(f"✓ {attraction.name} exists")
        else:
            attraction = Attraction(id=uuid.uuid4(), org_id=DEMO_ORG_ID, is_active=True, **DEMO_ATTRACTION)
            session.add(attraction)
            await session.flush()
            print(f"✓ Created attraction: {attraction.name}")

        # ====================================================================
        # 2. Virtual queue
        # ====================================================================
        result = await session.execute(select(QueueConfig).where(QueueConfig.attraction_id == attraction.id))
        if result.scalar_one_or_none():
            print("✓ Queue exists")
        else:
            session.add(
                QueueConfig(
                    id=uuid.uuid4(),
                    org_id=DEMO_ORG_ID,
                    attraction_id=attraction.id,
                    name=f"{attraction.name} Queue",
                    **QUEUE_CONFIG_DEFAULTS,
                )
            )
            print("+ Created queue")

        # ====================================================================
        # 3. Ticket types
        # ====================================================================
        print("\nTicket types:")
        for data in TICKET_TYPES:
            result = await session.execute(
                select(TicketType).where(
                    TicketType.attraction_id == attraction.id,
                    TicketType.name == data["name"],
                )
            )
            if result.scalar_one_or_none():
                print(f"  ✓ {data['name']} exists")
                continue

            session.add(
                TicketType(id=uuid.uuid4(), org_id=DEMO_ORG_ID, attraction_id=attraction.id, is_active=True, **data)
            )
            print(f"  + Created: {data['name']} ({data['price']})")

        # ====================================================================
        # 4. Time slots for the coming nights
        # ====================================================================
        print("\nTime slots:")
        today = datetime.now(pytz.timezone(attraction.timezone)).date()
        for offset in range(days):
            day = today + timedelta(days=offset)
            result = await session.execute(
                select(TimeSlot.id).where(TimeSlot.attraction_id == attraction.id, TimeSlot.date == day)
            )
            if result.first():
                print(f"  ✓ {day} exists")
                continue

            for start, end in slot_times():
                session.add(
                    TimeSlot(
                        id=uuid.uuid4(),
                        org_id=DEMO_ORG_ID,
                        attraction_id=attraction.id,
                        date=day,
                        start_time=start,
                        end_time=end,
                        capacity=SLOT_CAPACITY,
                        booked_count=0,
                    )
                )
            print(f"  + Created slots for {day}")

        await session.commit()
        print("\n✓ Seed data complete!")
        print(f"  Organization: {DEMO_ORG_ID}")
        print(f"  Attraction:   {attraction.id}")


async def main():
    """Main entry point."""
    print("=" * 50)
    print("Seeding Admission Database")
    print("=" * 50)

    print("\nInitializing database...")
    await init_db()

    print("\nSeeding demo attraction...")
    await seed_demo()


if __name__ == "__main__":
    asyncio.run(main())
