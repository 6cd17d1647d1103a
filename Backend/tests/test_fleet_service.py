from fleet_gps.models.models import Vehicle
from fleet_gps.services.fleet_service import FleetService


def test_fleet_status_joins_active_mission_and_latest_position(db, make_mission, add_position):
    mission = make_mission(status="in-progress", origin=(33.0, -7.0), destination=(34.0, -7.0))
    add_position(mission, 33.1, -7.0, minutes_ago=10, speed=65)
    add_position(mission, 33.2, -7.0, minutes_ago=1, speed=88)
    idle = Vehicle(plate_number="ZZ-999-ZZ", type="van", status="maintenance")
    db.add(idle)
    db.commit()

    entries = {entry.vehicle_id: entry for entry in FleetService(db).get_fleet_status()}

    active_entry = entries[mission.vehicle_id]
    assert active_entry.mission_id == mission.id
    assert active_entry.mission_status.value == "in-progress"
    assert active_entry.latitude == 33.2
    assert active_entry.speed == 88
    assert active_entry.last_update is not None
    assert active_entry.driver_name == mission.driver_rel.name

    idle_entry = entries[idle.id]
    assert idle_entry.mission_id is None
    assert idle_entry.latitude is None
    assert idle_entry.driver_name is None


def test_fleet_status_ignores_finished_missions(db, make_mission, add_position):
    mission = make_mission(status="completed")
    add_position(mission, 33.5, -7.0)

    entry = FleetService(db).get_fleet_status()[0]

    assert entry.vehicle_id == mission.vehicle_id
    assert entry.mission_id is None
    assert entry.latitude is None


def test_fleet_status_route(client, make_mission):
    mission = make_mission()

    response = client.get("/fleet/status")

    assert response.status_code == 200
    assert response.json()[0]["mission_id"] == mission.id
    assert response.json()[0]["latitude"] is None


def test_vehicle_details_use_explicit_labels(client, make_mission):
    mission = make_mission()

    response = client.get(f"/vehicles/{mission.vehicle_id}/details")

    assert response.status_code == 200
    rows = {row["label"]: row["value"] for row in response.json()["rows"]}
    assert list(rows) == ["Immatriculation", "Type", "Statut", "Conducteur", "Mis en service"]
    assert rows["Type"] == "Camion"
    assert rows["Statut"] == "Actif"
    assert rows["Conducteur"] == "Driver 1"


def test_vehicle_details_unknown_vehicle(client):
    response = client.get("/vehicles/unknown/details")

    assert response.status_code == 404
    assert response.json() == {"error": "Vehicle not found"}
