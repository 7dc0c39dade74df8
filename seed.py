"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 6 drivers and 3 logistics fulfillers (mix of approval states)
  - 8 sample bookings (pending, assigned, in progress, completed, cancelled)
  - 1 review on the completed booking
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from src.config import settings
from src.domain.enums import (
    RESERVATION_FOR_KIND,
    ApprovalStatus,
    Availability,
    BookingStatus,
    BookingType,
    CancelledBy,
    FulfillerKind,
    PaymentStatus,
    PriceSetBy,
    ReviewType,
)
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import BookingModel, FulfillerModel, ReviewModel

# Banjul / Serrekunda area
PLACES = {
    "airport": ("Banjul International Airport", 13.3380, -16.6522),
    "serrekunda": ("Serrekunda Market", 13.4382, -16.6781),
    "bakau": ("Bakau Fish Market", 13.4781, -16.6819),
    "banjul": ("Albert Market, Banjul", 13.4531, -16.5775),
    "brikama": ("Brikama Craft Market", 13.2714, -16.6494),
    "kololi": ("Senegambia Strip, Kololi", 13.4492, -16.7225),
}

FULFILLERS = [
    {"user_id": 101, "kind": FulfillerKind.DRIVER, "name": "Lamin Jallow", "approval": ApprovalStatus.APPROVED, "availability": Availability.AVAILABLE, "rating": (4.8, 25)},
    {"user_id": 102, "kind": FulfillerKind.DRIVER, "name": "Fatou Ceesay", "approval": ApprovalStatus.APPROVED, "availability": Availability.AVAILABLE, "rating": (4.6, 12)},
    {"user_id": 103, "kind": FulfillerKind.DRIVER, "name": "Ousman Bah", "approval": ApprovalStatus.ACTIVE, "availability": Availability.OFFLINE, "rating": (4.2, 8)},
    {"user_id": 104, "kind": FulfillerKind.DRIVER, "name": "Isatou Njie", "approval": ApprovalStatus.PENDING_APPROVAL, "availability": Availability.OFFLINE, "rating": (0.0, 0)},
    {"user_id": 105, "kind": FulfillerKind.DRIVER, "name": "Modou Sowe", "approval": ApprovalStatus.SUSPENDED, "availability": Availability.OFFLINE, "rating": (3.1, 9)},
    {"user_id": 106, "kind": FulfillerKind.DRIVER, "name": "Awa Touray", "approval": ApprovalStatus.APPROVED, "availability": Availability.BUSY, "rating": (4.9, 40)},
    {"user_id": 201, "kind": FulfillerKind.LOGISTICS, "name": "Ebrima Darboe", "approval": ApprovalStatus.APPROVED, "availability": Availability.AVAILABLE, "rating": (4.5, 18)},
    {"user_id": 202, "kind": FulfillerKind.LOGISTICS, "name": "Mariama Sanneh", "approval": ApprovalStatus.APPROVED, "availability": Availability.AVAILABLE, "rating": (4.7, 30)},
    {"user_id": 203, "kind": FulfillerKind.LOGISTICS, "name": "Alieu Camara", "approval": ApprovalStatus.REJECTED, "availability": Availability.OFFLINE, "rating": (0.0, 0)},
]


def _place(prefix: str, key: str) -> dict:
    address, lat, lng = PLACES[key]
    return {f"{prefix}_address": address, f"{prefix}_lat": lat, f"{prefix}_lng": lng}


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM fulfillers"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Fulfillers ────────────────────────────────────────────────
        fulfillers = []
        for f in FULFILLERS:
            average, total = f["rating"]
            m = FulfillerModel(
                user_id=f["user_id"],
                kind=f["kind"],
                display_name=f["name"],
                approval_status=f["approval"],
                availability=f["availability"],
                rating_average=average,
                rating_total=total,
                rating_breakdown={},
                rating_version=0,
            )
            session.add(m)
            fulfillers.append(m)
        await session.flush()
        print(f"  Created {len(fulfillers)} fulfillers")

        # ── Bookings ──────────────────────────────────────────────────
        now = datetime.now(timezone.utc)
        hour = timedelta(hours=1)
        lamin, fatou, _, _, _, _, ebrima, mariama, _ = fulfillers

        def priced(amount: float) -> dict:
            return {
                "price_amount": amount,
                "price_currency": settings.default_currency,
                "price_set_by": PriceSetBy.ADMIN,
                "price_set_at": now - hour,
            }

        bookings_data = [
            # Waiting for an admin to assign
            {"requester_id": 1, "type": BookingType.RIDE, "status": BookingStatus.PENDING,
             **_place("pickup", "airport"), **_place("destination", "kololi")},
            {"requester_id": 2, "type": BookingType.DELIVERY, "status": BookingStatus.PENDING,
             **_place("pickup", "serrekunda"), **_place("destination", "bakau"),
             "package_description": "Box of textiles", "package_weight_kg": 4.5},
            # In progress: these bind Lamin and Mariama
            {"requester_id": 3, "type": BookingType.RIDE, "status": BookingStatus.DRIVER_EN_ROUTE,
             "fulfiller": lamin, "assigned_at": now - hour, "en_route_at": now - hour / 2,
             **_place("pickup", "banjul"), **_place("destination", "airport"), **priced(850.0)},
            {"requester_id": 4, "type": BookingType.DELIVERY, "status": BookingStatus.IN_TRANSIT,
             "fulfiller": mariama, "assigned_at": now - 2 * hour, "en_route_at": now - 2 * hour,
             "picked_up_at": now - hour, "in_transit_at": now - hour / 2,
             **_place("pickup", "brikama"), **_place("destination", "banjul"), **priced(400.0),
             "package_description": "Documents", "package_is_fragile": True},
            # Finished
            {"requester_id": 1, "type": BookingType.RIDE, "status": BookingStatus.COMPLETED,
             "fulfiller": fatou, "assigned_at": now - 5 * hour, "en_route_at": now - 5 * hour,
             "picked_up_at": now - 4 * hour, "in_transit_at": now - 4 * hour,
             "completed_at": now - 3 * hour, "payment_status": PaymentStatus.CONFIRMED,
             **_place("pickup", "kololi"), **_place("destination", "serrekunda"), **priced(300.0)},
            {"requester_id": 5, "type": BookingType.DELIVERY, "status": BookingStatus.COMPLETED,
             "fulfiller": ebrima, "assigned_at": now - 8 * hour, "en_route_at": now - 8 * hour,
             "picked_up_at": now - 7 * hour, "in_transit_at": now - 7 * hour,
             "completed_at": now - 6 * hour,
             **_place("pickup", "bakau"), **_place("destination", "brikama"), **priced(650.0)},
            {"requester_id": 2, "type": BookingType.RIDE, "status": BookingStatus.CANCELLED,
             "cancelled_at": now - 2 * hour, "cancellation_reason": "Plans changed",
             "cancelled_by": CancelledBy.USER,
             **_place("pickup", "airport"), **_place("destination", "banjul")},
            {"requester_id": 6, "type": BookingType.RIDE, "status": BookingStatus.PENDING,
             **_place("pickup", "serrekunda"), **_place("destination", "airport")},
        ]

        bookings = []
        for b in bookings_data:
            fulfiller = b.pop("fulfiller", None)
            m = BookingModel(
                requested_at=now - 10 * hour,
                fulfiller_id=fulfiller.id if fulfiller else None,
                **b,
            )
            session.add(m)
            bookings.append((m, fulfiller))
        await session.flush()
        print(f"  Created {len(bookings)} bookings")

        # Keep reservations consistent with the active bookings above
        for booking, fulfiller in bookings:
            if fulfiller is None or booking.status in (
                BookingStatus.COMPLETED,
                BookingStatus.CANCELLED,
            ):
                continue
            fulfiller.current_booking_id = booking.id
            fulfiller.availability = RESERVATION_FOR_KIND[fulfiller.kind]

        # ── Review ────────────────────────────────────────────────────
        completed, reviewed = bookings[4]
        session.add(
            ReviewModel(
                booking_id=completed.id,
                reviewer_id=completed.requester_id,
                fulfiller_id=reviewed.id,
                type=ReviewType.USER_TO_DRIVER,
                rating=5,
                comment="On time and friendly",
                feedback={"punctuality": 5},
                is_anonymous=False,
            )
        )
        await session.flush()
        print("  Created 1 review")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
