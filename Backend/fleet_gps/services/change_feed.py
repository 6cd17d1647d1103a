import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fleet_gps.models.models import GpsPosition, Mission
from fleet_gps.schemas.schemas import ChangeEventType

logger = logging.getLogger(__name__)

# Explicit column lists; rows are never built by reflecting over a record
POSITION_FIELDS = ("id", "mission_id", "vehicle_id", "latitude", "longitude", "speed", "heading", "timestamp")
MISSION_FIELDS = ("id", "status", "vehicle_id", "driver_id", "actual_start", "actual_end")


def position_to_row(position: GpsPosition) -> Dict[str, Any]:
    return {name: getattr(position, name) for name in POSITION_FIELDS}


def mission_to_row(mission: Mission) -> Dict[str, Any]:
    return {name: getattr(mission, name) for name in MISSION_FIELDS}


@dataclass
class ChangeEvent:
    """Changement d'une ligne d'une table (insert / update / delete)"""
    event_type: ChangeEventType
    table: str
    row: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[ChangeEvent], None]


class ChangeFeed:
    """Diffusion en mémoire des changements vers les abonnés"""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ChangeEvent):
        # A failing subscriber must not fail the write that produced the event
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Erreur dans un abonné du flux de changements ({event.table}/{event.event_type.value}): {e}")


class FleetState:
    """Vue locale de la flotte, fusionnée événement par événement (sans rechargement complet)"""

    def __init__(self):
        self.latest_positions: Dict[str, Dict[str, Any]] = {}
        self.mission_statuses: Dict[str, str] = {}

    def apply(self, event: ChangeEvent):
        if event.table == "gps_positions":
            self._apply_position(event)
        elif event.table == "missions":
            self._apply_mission(event)

    __call__ = apply

    def _apply_position(self, event: ChangeEvent):
        row = event.row
        mission_id = row["mission_id"]
        if event.event_type == ChangeEventType.DELETE:
            current = self.latest_positions.get(mission_id)
            if current and current["id"] == row["id"]:
                del self.latest_positions[mission_id]
            return

        current = self.latest_positions.get(mission_id)
        if current is None or row["timestamp"] >= current["timestamp"]:
            self.latest_positions[mission_id] = dict(row)

    def _apply_mission(self, event: ChangeEvent):
        mission_id = event.row["id"]
        if event.event_type == ChangeEventType.DELETE:
            self.mission_statuses.pop(mission_id, None)
            self.latest_positions.pop(mission_id, None)
        else:
            self.mission_statuses[mission_id] = event.row["status"]

    def latest_position(self, mission_id: str) -> Optional[Dict[str, Any]]:
        return self.latest_positions.get(mission_id)


change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    return change_feed
