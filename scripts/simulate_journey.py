"""
Journey Simulation Smoke Test.

Runs one booking end to end against a real database:
1. Seed a confirmed booking
2. Priest starts tracking along a scripted route
3. Customer follows the booking live until the route is exhausted

Usage:
    python scripts/simulate_journey.py [DATABASE_URL]
"""

import asyncio
import sys
import uuid

from tracking_backend.app.core.config import settings
from tracking_backend.app.core.reliability import ResubscribePolicy
from tracking_backend.app.core.store import TrackingStore
from tracking_backend.app.db.procedures import install_procedures
from tracking_backend.app.db.session import Base, build_engine, build_session_factory
from tracking_backend.app.models.enums import BookingStatus
from tracking_backend.app.models.priest_booking import PriestBooking
from tracking_backend.app.services.booking_tracker import BookingTracker
from tracking_backend.app.services.change_feed import InMemoryChangeFeed
from tracking_backend.app.services.geolocation import Position, ScriptedGeolocationProvider
from tracking_backend.app.services.journey_service import JourneyService, journey_state_of
from tracking_backend.app.services.location_sampler import LocationSampler, SamplerOptions
from tracking_backend.app.services.location_service import LocationService
from tracking_backend.app.services.priest_tracker import PriestTracker
from tracking_backend.app.services.snapshot_service import SnapshotService
from tracking_backend.app.services.tracking_subscriber import TrackingSubscriber

# Shivajinagar to Koregaon Park, Pune
ROUTE = [
    Position(latitude=18.5308, longitude=73.8475, accuracy=12.0, heading=95.0, speed=8.0),
    Position(latitude=18.5316, longitude=73.8562, accuracy=10.0, heading=92.0, speed=9.5),
    None,
    Position(latitude=18.5337, longitude=73.8690, accuracy=8.0, heading=88.0, speed=11.0),
    Position(latitude=18.5362, longitude=73.8840, accuracy=6.0, heading=80.0, speed=7.0),
]


def print_step(step, msg):
    print(f"[{step}] {msg}")


def describe(state):
    location = state.snapshot.current_location if state.snapshot else None
    where = f"{location.latitude:.4f},{location.longitude:.4f}" if location else "unknown"
    started = state.snapshot.journey_started if state.snapshot else False
    return f"journey_started={started} location={where}"


async def main(database_url=None):
    engine = build_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await install_procedures(conn, settings.location_rpc_name)

    store = TrackingStore(build_session_factory(engine), InMemoryChangeFeed())
    customer_id, priest_id = str(uuid.uuid4()), str(uuid.uuid4())

    print_step("SEED", "Creating confirmed booking...")
    booking = PriestBooking(
        user_id=customer_id,
        priest_id=priest_id,
        purpose="Satyanarayan Puja",
        address="Lane 5, Koregaon Park, Pune",
        status=BookingStatus.CONFIRMED.value,
    )
    async with store.session() as db:
        db.add(booking)
        await db.commit()
        await db.refresh(booking)

    follower = BookingTracker(
        SnapshotService(store),
        TrackingSubscriber(store.feed, ResubscribePolicy(enabled=False)),
        booking.id,
        customer_id,
        on_change=lambda state: print_step("CUSTOMER", describe(state)),
    )
    provider = ScriptedGeolocationProvider(ROUTE, interval=0.5)
    priest = PriestTracker(
        JourneyService(store),
        LocationService(store),
        LocationSampler(provider),
        journey_state_of(booking),
        priest_id,
        interval=0.5,
        sampler_options=SamplerOptions(watch=True, timeout=2.0, maximum_age=0.0),
    )

    try:
        async with follower:
            print_step("PRIEST", "Starting journey...")
            async with priest:
                while provider.active_watches:
                    await asyncio.sleep(0.5)
                await asyncio.sleep(1.0)
            print_step(
                "PRIEST",
                f"sent={priest.sent_updates} failed={priest.failed_updates} skipped={priest.skipped_ticks}"
            )
    finally:
        await store.close()
        await engine.dispose()

    if priest.sent_updates == 0:
        print("❌ FAILURE: no location was recorded")
        sys.exit(1)
    print("✅ Journey simulation passed")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
