from typing import List, Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fleet_gps.core.database import get_db
from fleet_gps.schemas.schemas import FleetStatusEntry, VehicleDetailsResponse, ErrorResponse
from fleet_gps.services.fleet_service import FleetService

router = APIRouter(tags=["Flotte"])


@router.get(
    "/fleet/status",
    response_model=List[FleetStatusEntry],
    summary="État actuel de la flotte",
    description="Un élément par véhicule, avec sa mission en cours et sa dernière position connue.",
)
def get_fleet_status(db: Annotated[Session, Depends(get_db)]):
    return FleetService(db).get_fleet_status()


@router.get(
    "/vehicles/{vehicle_id}/details",
    response_model=VehicleDetailsResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_vehicle_details(vehicle_id: str, db: Annotated[Session, Depends(get_db)]):
    return FleetService(db).get_vehicle_details(vehicle_id)
