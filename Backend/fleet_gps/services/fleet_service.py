from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from fleet_gps.core.exceptions import NotFound
from fleet_gps.models.models import Vehicle, Mission
from fleet_gps.schemas.schemas import (
    FleetStatusEntry, VehicleDetailRow, VehicleDetailsResponse, MissionStatus
)
from fleet_gps.services.mission_service import PositionService

VEHICLE_TYPE_LABELS = {
    "truck": "Camion",
    "van": "Fourgon",
    "car": "Voiture",
}

VEHICLE_STATUS_LABELS = {
    "active": "Actif",
    "maintenance": "En maintenance",
    "inactive": "Inactif",
}


class FleetService:
    """Vue 'état actuel de la flotte': véhicule + mission en cours + dernière position"""

    def __init__(self, db: Session):
        self.db = db
        self.positions = PositionService(db)

    def _active_missions_by_vehicle(self) -> Dict[str, Mission]:
        missions = self.db.query(Mission).filter(
            Mission.status == MissionStatus.IN_PROGRESS.value
        ).order_by(Mission.scheduled_start).all()
        # Latest scheduled in-progress mission wins if a vehicle has several
        return {mission.vehicle_id: mission for mission in missions}

    def get_fleet_status(self) -> List[FleetStatusEntry]:
        active_missions = self._active_missions_by_vehicle()
        entries = []

        for vehicle in self.db.query(Vehicle).order_by(Vehicle.plate_number).all():
            entry = FleetStatusEntry(
                vehicle_id=vehicle.id,
                plate_number=vehicle.plate_number,
                type=vehicle.type,
                driver_name=vehicle.current_driver_rel.name if vehicle.current_driver_rel else None,
            )

            mission = active_missions.get(vehicle.id)
            if mission:
                entry.mission_id = mission.id
                entry.mission_status = MissionStatus(mission.status)
                entry.origin = mission.origin
                entry.origin_lat = mission.origin_lat
                entry.origin_lng = mission.origin_lng
                entry.destination = mission.destination
                entry.destination_lat = mission.destination_lat
                entry.destination_lng = mission.destination_lng
                entry.delay_minutes = mission.delay_minutes
                if mission.driver_rel:
                    entry.driver_name = mission.driver_rel.name

                last_position = self.positions.latest_for_mission(mission.id)
                if last_position:
                    entry.latitude = last_position.latitude
                    entry.longitude = last_position.longitude
                    entry.speed = last_position.speed
                    entry.last_update = last_position.timestamp

            entries.append(entry)

        return entries

    def get_vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = self.db.query(Vehicle).filter(Vehicle.id == vehicle_id).first()
        if not vehicle:
            raise NotFound("Vehicle not found")
        return vehicle

    def get_vehicle_details(self, vehicle_id: str) -> VehicleDetailsResponse:
        vehicle = self.get_vehicle(vehicle_id)
        driver_name: Optional[str] = vehicle.current_driver_rel.name if vehicle.current_driver_rel else None

        rows = [
            VehicleDetailRow(label="Immatriculation", value=vehicle.plate_number),
            VehicleDetailRow(label="Type", value=VEHICLE_TYPE_LABELS.get(vehicle.type, vehicle.type)),
            VehicleDetailRow(label="Statut", value=VEHICLE_STATUS_LABELS.get(vehicle.status, vehicle.status)),
            VehicleDetailRow(label="Conducteur", value=driver_name),
            VehicleDetailRow(
                label="Mis en service",
                value=vehicle.created_at.isoformat() if vehicle.created_at else None,
            ),
        ]
        return VehicleDetailsResponse(vehicle_id=vehicle.id, rows=rows)
