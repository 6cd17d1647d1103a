from dataclasses import dataclass
from typing import Optional

from fleet_gps.models.models import GpsPosition

@dataclass
class Coordinates:
    """Position GPS en degrés décimaux"""
    latitude: float
    longitude: float

@dataclass
class StepResult:
    """Résultat d'un pas de simulation, avant persistance"""
    distance_remaining: float
    arrived: bool
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    speed: Optional[int] = None
    heading: Optional[int] = None

@dataclass
class AdvanceResult:
    """Résultat de l'avancement d'une mission"""
    arrived: bool
    distance_remaining: float
    position: Optional[GpsPosition] = None
