from typing import List, Optional, Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fleet_gps.core.database import get_db
from fleet_gps.core.exceptions import NotFound
from fleet_gps.schemas.schemas import (
    MissionResponse, MissionStatus, MissionStatusUpdate, GpsPositionResponse, ErrorResponse
)
from fleet_gps.services.change_feed import ChangeFeed, get_change_feed
from fleet_gps.services.mission_service import MissionService, PositionService

# Create an APIRouter instance for missions
router = APIRouter(
    prefix="/missions",
    tags=["Missions"],
    responses={404: {"model": ErrorResponse, "description": "Non trouvé"}},
)


@router.get("", response_model=List[MissionResponse])
def list_missions(
    db: Annotated[Session, Depends(get_db)],
    status_filter: Optional[MissionStatus] = Query(default=None, alias="status"),
):
    """Liste des missions, filtrable par statut."""
    return MissionService(db).get_missions(status_filter)


@router.get("/{mission_id}", response_model=MissionResponse)
def get_mission(mission_id: str, db: Annotated[Session, Depends(get_db)]):
    return MissionService(db).get_mission(mission_id)


@router.patch("/{mission_id}/status", response_model=MissionResponse, status_code=status.HTTP_200_OK)
def update_mission_status(
    mission_id: str,
    update: MissionStatusUpdate,
    db: Annotated[Session, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    """
    Change le statut d'une mission. C'est le seul point d'écriture du statut:
    la simulation GPS ne termine jamais une mission d'elle-même.
    """
    return MissionService(db, feed=feed).update_status(mission_id, update.status)


@router.get("/{mission_id}/positions", response_model=List[GpsPositionResponse])
def get_mission_positions(
    mission_id: str,
    db: Annotated[Session, Depends(get_db)],
    limit: int = Query(default=100, ge=1, le=1000),
):
    """Historique des positions de la mission, la plus récente en premier."""
    MissionService(db).get_mission(mission_id)
    return PositionService(db).history_for_mission(mission_id, limit)


@router.get("/{mission_id}/positions/latest", response_model=GpsPositionResponse)
def get_latest_position(mission_id: str, db: Annotated[Session, Depends(get_db)]):
    MissionService(db).get_mission(mission_id)
    position = PositionService(db).latest_for_mission(mission_id)
    if position is None:
        raise NotFound("No position recorded for this mission")
    return position
