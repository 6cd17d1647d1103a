from typing import Optional, Union, Annotated

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from fleet_gps.core.database import get_db
from fleet_gps.schemas.schemas import (
    SimulateGpsRequest, SimulateGpsResponse, ArrivedResponse, ErrorResponse, GpsPositionResponse
)
from fleet_gps.services.change_feed import ChangeFeed, get_change_feed
from fleet_gps.services.simulator_service import PositionAdvancer

router = APIRouter(
    tags=["Simulation GPS"],
    responses={
        400: {"model": ErrorResponse, "description": "mission_id manquant ou corps invalide"},
        404: {"model": ErrorResponse, "description": "Mission non trouvée"},
        409: {"model": ErrorResponse, "description": "Mission non en cours"},
        500: {"model": ErrorResponse, "description": "Échec de l'écriture de la position"},
    },
)


@router.post(
    "/simulate-gps",
    response_model=None,
    responses={200: {"model": Union[SimulateGpsResponse, ArrivedResponse]}},
    status_code=status.HTTP_200_OK,
    summary="Faire avancer d'un pas la position simulée d'une mission",
)
def simulate_gps(
    db: Annotated[Session, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    payload: Optional[SimulateGpsRequest] = Body(default=None),
):
    """
    Calcule et enregistre le prochain point GPS simulé de la mission.
    Renvoie `arrived: true` sans rien écrire quand le véhicule est à moins de
    0.01 degré de sa destination. Le statut de la mission n'est jamais modifié.
    """
    mission_id = payload.mission_id if payload else None
    result = PositionAdvancer(db, feed=feed).advance(mission_id)

    if result.arrived:
        return ArrivedResponse()

    return SimulateGpsResponse(
        position=GpsPositionResponse.model_validate(result.position),
        distance_remaining=result.distance_remaining,
    )
