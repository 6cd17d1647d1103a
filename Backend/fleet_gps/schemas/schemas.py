from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

# ====================================================================
# Pydantic Schemas
# ====================================================================

class MissionStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class ChangeEventType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

# --- Simulation (POST /simulate-gps) ---
class SimulateGpsRequest(BaseModel):
    # Optional so that a missing id is reported as MissingInput, not a 422
    mission_id: Optional[str] = None

class GpsPositionResponse(BaseModel):
    id: str
    mission_id: str
    vehicle_id: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    speed: Optional[int] = Field(default=None, description="Vitesse en km/h")
    heading: Optional[int] = Field(default=None, description="Cap en degrés [0, 360)")
    timestamp: datetime

    class Config:
        from_attributes = True

class SimulateGpsResponse(BaseModel):
    success: bool = True
    position: GpsPositionResponse
    distance_remaining: float = Field(..., description="Distance restante avant le pas, en degrés")

class ArrivedResponse(BaseModel):
    message: str = "Arrived at destination"
    arrived: bool = True

class ErrorResponse(BaseModel):
    error: str

# --- Missions ---
class MissionResponse(BaseModel):
    id: str
    status: MissionStatus
    origin: str
    origin_lat: float
    origin_lng: float
    destination: str
    destination_lat: float
    destination_lng: float
    distance_km: float
    delay_minutes: Optional[int] = None
    vehicle_id: str
    driver_id: str
    scheduled_start: datetime
    scheduled_end: datetime
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MissionStatusUpdate(BaseModel):
    status: MissionStatus

# --- Fleet ---
class FleetStatusEntry(BaseModel):
    """Entrée de la vue 'current fleet status'"""
    vehicle_id: str
    plate_number: str
    type: str
    driver_name: Optional[str] = None
    mission_id: Optional[str] = None
    mission_status: Optional[MissionStatus] = None
    origin: Optional[str] = None
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    destination: Optional[str] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    delay_minutes: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    speed: Optional[int] = None
    last_update: Optional[datetime] = None

class VehicleDetailRow(BaseModel):
    label: str
    value: Optional[str] = None

class VehicleDetailsResponse(BaseModel):
    vehicle_id: str
    rows: List[VehicleDetailRow]

# --- Scheduler ---
class CycleReport(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    advanced: List[str] = Field(default_factory=list)
    arrived: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)

class SimulationStatusResponse(BaseModel):
    is_running: bool
    details: str
    manual_cycle_running: bool = False
    interval_seconds: Optional[int] = None
    last_cycle: Optional[CycleReport] = None
