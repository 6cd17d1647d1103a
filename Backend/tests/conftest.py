import os

# Must be set before fleet_gps is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SIMULATION_AUTOSTART"] = "false"
os.environ["IOT_HUB_CONNECTION_STRING"] = ""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from fleet_gps.core.database import Base, engine, SessionLocal, get_db
from fleet_gps.models.models import Driver, Vehicle, Mission, GpsPosition
from fleet_gps.services.change_feed import ChangeFeed, get_change_feed
from fleet_gps.main import app


class FixedRandom:
    """Random source returning a constant; 0.5 cancels the jitter."""

    def __init__(self, value=0.5):
        self.value = value

    def random(self):
        return self.value


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fixed_rng():
    return FixedRandom(0.5)


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def make_mission(db):
    counter = {"n": 0}

    def _make_mission(status="in-progress", origin=(33.0, -7.0), destination=(34.0, -7.0), vehicle=None):
        counter["n"] += 1
        n = counter["n"]
        driver = Driver(name=f"Driver {n}", email=f"driver{n}@example.com")
        db.add(driver)
        db.flush()
        if vehicle is None:
            vehicle = Vehicle(plate_number=f"AB-{n:03d}-CD", type="truck", status="active",
                              current_driver_id=driver.id)
            db.add(vehicle)
            db.flush()
        now = datetime.now(timezone.utc)
        mission = Mission(
            status=status,
            origin=f"Origin {n}",
            origin_lat=origin[0],
            origin_lng=origin[1],
            destination=f"Destination {n}",
            destination_lat=destination[0],
            destination_lng=destination[1],
            distance_km=110.0,
            vehicle_id=vehicle.id,
            driver_id=driver.id,
            scheduled_start=now - timedelta(hours=1),
            scheduled_end=now + timedelta(hours=1),
        )
        db.add(mission)
        db.commit()
        db.refresh(mission)
        return mission

    return _make_mission


@pytest.fixture
def add_position(db):
    def _add_position(mission, latitude, longitude, minutes_ago=5, speed=70, heading=0):
        position = GpsPosition(
            mission_id=mission.id,
            vehicle_id=mission.vehicle_id,
            latitude=latitude,
            longitude=longitude,
            speed=speed,
            heading=heading,
            timestamp=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        )
        db.add(position)
        db.commit()
        db.refresh(position)
        return position

    return _add_position


@pytest.fixture
def client(db, feed):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_change_feed] = lambda: feed
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def count_positions(db, mission_id=None):
    query = db.query(GpsPosition)
    if mission_id is not None:
        query = query.filter(GpsPosition.mission_id == mission_id)
    return query.count()
