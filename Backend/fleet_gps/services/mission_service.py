import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet_gps.core.exceptions import NotFound, StoreReadFailure, StoreWriteFailure
from fleet_gps.models.models import Mission, GpsPosition
from fleet_gps.schemas.schemas import MissionStatus, ChangeEventType
from fleet_gps.services.change_feed import ChangeFeed, ChangeEvent, mission_to_row

logger = logging.getLogger(__name__)


def _run_read(db: Session, what: str, read):
    """Exécute une lecture; une erreur SQLAlchemy devient StoreReadFailure après rollback"""
    try:
        return read()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Erreur lors de la lecture {what}: {e}")
        raise StoreReadFailure(f"Failed to read {what}") from e


class MissionService:
    """Accès aux missions. Le statut appartient au système externe, exposé ici via update_status."""

    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed

    def get_mission(self, mission_id: str) -> Mission:
        mission = _run_read(
            self.db, "mission",
            lambda: self.db.query(Mission).filter(Mission.id == mission_id).first()
        )
        if not mission:
            raise NotFound("Mission not found")
        return mission

    def get_missions(self, status_filter: Optional[MissionStatus] = None) -> List[Mission]:
        query = self.db.query(Mission)
        if status_filter:
            query = query.filter(Mission.status == MissionStatus(status_filter).value)
        return _run_read(self.db, "missions", lambda: query.order_by(Mission.scheduled_start).all())

    def get_in_progress_missions(self) -> List[Mission]:
        return self.get_missions(MissionStatus.IN_PROGRESS)

    def update_status(self, mission_id: str, new_status: MissionStatus) -> Mission:
        mission = self.get_mission(mission_id)
        new_status = MissionStatus(new_status)
        now = datetime.now(timezone.utc)

        mission.status = new_status.value
        if new_status == MissionStatus.IN_PROGRESS and mission.actual_start is None:
            mission.actual_start = now
        elif new_status in (MissionStatus.COMPLETED, MissionStatus.CANCELLED) and mission.actual_end is None:
            mission.actual_end = now

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Erreur lors de la mise à jour du statut de la mission {mission_id}: {e}")
            raise StoreWriteFailure(str(e)) from e
        self.db.refresh(mission)
        logger.info(f"Mission {mission_id} passée au statut {new_status.value}")

        if self.feed:
            self.feed.publish(ChangeEvent(ChangeEventType.UPDATE, "missions", mission_to_row(mission)))
        return mission


class PositionService:
    """Journal append-only des positions GPS par mission"""

    def __init__(self, db: Session):
        self.db = db

    def latest_for_mission(self, mission_id: str) -> Optional[GpsPosition]:
        return _run_read(self.db, "latest position", lambda: self.db.query(GpsPosition).filter(
            GpsPosition.mission_id == mission_id
        ).order_by(GpsPosition.timestamp.desc()).first())

    def history_for_mission(self, mission_id: str, limit: int = 100) -> List[GpsPosition]:
        return _run_read(self.db, "position history", lambda: self.db.query(GpsPosition).filter(
            GpsPosition.mission_id == mission_id
        ).order_by(GpsPosition.timestamp.desc()).limit(limit).all())

    def insert(self, mission_id: str, vehicle_id: str, latitude: float, longitude: float,
               speed: int, heading: int, timestamp: datetime) -> GpsPosition:
        position = GpsPosition(
            mission_id=mission_id,
            vehicle_id=vehicle_id,
            latitude=latitude,
            longitude=longitude,
            speed=speed,
            heading=heading,
            timestamp=timestamp,
        )
        try:
            self.db.add(position)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Erreur lors de la sauvegarde de la position pour la mission {mission_id}: {e}")
            raise StoreWriteFailure(str(e)) from e
        self.db.refresh(position)
        return position
