import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Index
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func # For default timestamps
from fleet_gps.core.database import Base # Import Base from our database.py

# ====================================================================
# SQLAlchemy Models (fleet supervision schema)
# ====================================================================

def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Driver(Base):
    __tablename__ = "drivers"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(255))
    phone = Column(String(50))
    avatar_url = Column(String(500))
    created_at = Column(DateTime(timezone=True), default=func.now())

    vehicles = relationship("Vehicle", back_populates="current_driver_rel")
    missions = relationship("Mission", back_populates="driver_rel")

class Vehicle(Base):
    __tablename__ = "vehicles"
    id = Column(String(36), primary_key=True, default=new_id)
    plate_number = Column(String(20), unique=True, nullable=False)
    type = Column(String(20), nullable=False, default="truck")
    status = Column(String(20), nullable=False, default="active")
    current_driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=func.now())

    current_driver_rel = relationship("Driver", back_populates="vehicles")
    missions = relationship("Mission", back_populates="vehicle_rel")

class Mission(Base):
    __tablename__ = "missions"
    id = Column(String(36), primary_key=True, default=new_id)
    status = Column(String(20), nullable=False, default="planned")
    origin = Column(String(255), nullable=False)
    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    destination = Column(String(255), nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=False, default=0.0)
    delay_minutes = Column(Integer, nullable=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=False)
    scheduled_start = Column(DateTime(timezone=True), nullable=False)
    scheduled_end = Column(DateTime(timezone=True), nullable=False)
    actual_start = Column(DateTime(timezone=True), nullable=True)
    actual_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=func.now())

    vehicle_rel = relationship("Vehicle", back_populates="missions")
    driver_rel = relationship("Driver", back_populates="missions")
    positions = relationship("GpsPosition", back_populates="mission_rel")

class GpsPosition(Base):
    __tablename__ = "gps_positions"
    id = Column(String(36), primary_key=True, default=new_id)
    mission_id = Column(String(36), ForeignKey("missions.id", ondelete="CASCADE"), nullable=False)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    speed = Column(Integer, nullable=True)
    heading = Column(Integer, nullable=True)
    # Microsecond precision on MySQL, otherwise steps within one second tie on "latest"
    timestamp = Column(
        DateTime(timezone=True).with_variant(mysql.DATETIME(fsp=6), "mysql"),
        nullable=False, default=utcnow
    )

    mission_rel = relationship("Mission", back_populates="positions")

    __table_args__ = (
        Index("ix_gps_positions_mission_timestamp", "mission_id", "timestamp"),
    )
