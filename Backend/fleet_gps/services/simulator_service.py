import logging
import math
import random
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from fleet_gps.core.config import (
    ARRIVAL_THRESHOLD_DEG, STEP_FRACTION, JITTER_SPAN_DEG, MIN_SPEED_KMH, SPEED_SPAN_KMH
)
from fleet_gps.core.exceptions import MissingInput, InvalidState
from fleet_gps.schemas.schemas import MissionStatus, ChangeEventType
from fleet_gps.schemas.simulator_schema import Coordinates, StepResult, AdvanceResult
from fleet_gps.services.change_feed import ChangeFeed, ChangeEvent, position_to_row
from fleet_gps.services.mission_service import MissionService, PositionService

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Arrondi à l'entier le plus proche, .5 vers le haut (pas d'arrondi bancaire)"""
    return int(math.floor(value + 0.5))


def planar_distance(current: Coordinates, destination: Coordinates) -> float:
    """Distance euclidienne en degrés (volontairement pas une distance géodésique)"""
    lat_diff = destination.latitude - current.latitude
    lng_diff = destination.longitude - current.longitude
    return math.sqrt(lat_diff * lat_diff + lng_diff * lng_diff)


def calculate_heading(lat_diff: float, lng_diff: float) -> int:
    """Cap en degrés dans [0, 360). atan2(lng, lat): 0 = nord, 90 = est."""
    heading = math.degrees(math.atan2(lng_diff, lat_diff))
    return round_half_up((heading + 360) % 360) % 360


def generate_speed(rng) -> int:
    """Vitesse entière dans [60, 100) km/h"""
    speed = round_half_up(MIN_SPEED_KMH + rng.random() * SPEED_SPAN_KMH)
    return min(speed, MIN_SPEED_KMH + SPEED_SPAN_KMH - 1)


def compute_step(current: Coordinates, destination: Coordinates, rng) -> StepResult:
    """
    Calcule le prochain point simulé: 2% du vecteur restant vers la destination,
    plus un bruit uniforme indépendant sur chaque axe.
    Aucun point n'est produit si la distance restante est sous le seuil d'arrivée.
    """
    lat_diff = destination.latitude - current.latitude
    lng_diff = destination.longitude - current.longitude
    distance = planar_distance(current, destination)

    if distance < ARRIVAL_THRESHOLD_DEG:
        return StepResult(distance_remaining=distance, arrived=True)

    new_lat = current.latitude + lat_diff * STEP_FRACTION + (rng.random() - 0.5) * JITTER_SPAN_DEG
    new_lng = current.longitude + lng_diff * STEP_FRACTION + (rng.random() - 0.5) * JITTER_SPAN_DEG

    return StepResult(
        distance_remaining=distance,
        arrived=False,
        latitude=new_lat,
        longitude=new_lng,
        speed=generate_speed(rng),
        heading=calculate_heading(lat_diff, lng_diff),
    )


class PositionAdvancer:
    """
    Fait avancer d'un pas le véhicule d'une mission en cours.

    Chaque appel lit la mission et sa dernière position, puis insère au plus une
    nouvelle position. Le passage de la mission à 'completed' à l'arrivée n'est
    PAS fait ici: il reste à la charge du système externe qui possède le statut.
    Les appels pour une même mission doivent être sérialisés par l'appelant.
    """

    def __init__(self, db: Session, rng=None, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.rng = rng if rng is not None else random.Random()
        self.feed = feed
        self.missions = MissionService(db)
        self.positions = PositionService(db)

    def resolve_current_position(self, mission) -> Coordinates:
        """Dernière position connue, ou l'origine de la mission s'il n'y en a pas"""
        last_position = self.positions.latest_for_mission(mission.id)
        if last_position is None:
            return Coordinates(mission.origin_lat, mission.origin_lng)
        return Coordinates(last_position.latitude, last_position.longitude)

    def advance(self, mission_id: Optional[str]) -> AdvanceResult:
        if not mission_id:
            raise MissingInput("mission_id is required")

        logger.info(f"Simulation GPS pour la mission {mission_id}")

        mission = self.missions.get_mission(mission_id)
        if mission.status != MissionStatus.IN_PROGRESS.value:
            raise InvalidState("Mission is not in progress")

        current = self.resolve_current_position(mission)
        destination = Coordinates(mission.destination_lat, mission.destination_lng)
        step = compute_step(current, destination, self.rng)

        if step.arrived:
            logger.info(f"Véhicule {mission.vehicle_id} arrivé à destination (mission {mission_id})")
            return AdvanceResult(arrived=True, distance_remaining=step.distance_remaining)

        position = self.positions.insert(
            mission_id=mission.id,
            vehicle_id=mission.vehicle_id,
            latitude=step.latitude,
            longitude=step.longitude,
            speed=step.speed,
            heading=step.heading,
            timestamp=datetime.now(timezone.utc),
        )
        logger.info(
            f"Nouvelle position pour la mission {mission_id}: "
            f"({position.latitude:.6f}, {position.longitude:.6f}) {position.speed} km/h, cap {position.heading}°"
        )

        if self.feed:
            self.feed.publish(ChangeEvent(ChangeEventType.INSERT, "gps_positions", position_to_row(position)))

        return AdvanceResult(arrived=False, distance_remaining=step.distance_remaining, position=position)
