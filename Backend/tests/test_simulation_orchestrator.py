import asyncio

from conftest import FixedRandom, count_positions
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query

from fleet_gps.core.exceptions import StoreWriteFailure
from fleet_gps.models.models import Mission
from fleet_gps.services.mission_service import PositionService
from fleet_gps.services.simulation_orchestrator import CYCLE_FAILURE_KEY, SimulationOrchestrator
from fleet_gps.services.simulator_service import PositionAdvancer


def test_cycle_advances_each_in_progress_mission_once(db, make_mission, add_position):
    moving = make_mission(status="in-progress", destination=(34.0, -7.0))
    arrived = make_mission(status="in-progress", destination=(34.0, -7.0))
    add_position(arrived, 34.0, -7.0)
    planned = make_mission(status="planned")
    ids = (moving.id, arrived.id, planned.id)

    orchestrator = SimulationOrchestrator(lambda: db, rng=FixedRandom())
    report = asyncio.run(orchestrator.run_full_simulation_cycle())

    assert report.advanced == [ids[0]]
    assert report.arrived == [ids[1]]
    assert report.failed == {}
    assert report.finished_at is not None
    assert orchestrator.last_report is report
    assert count_positions(db, ids[0]) == 1
    assert count_positions(db, ids[1]) == 1
    assert count_positions(db, ids[2]) == 0
    # Arrival never completes the mission
    assert db.query(Mission).filter(Mission.id == ids[1]).one().status == "in-progress"


def test_failure_on_one_mission_does_not_abort_cycle(db, make_mission):
    broken = make_mission(status="in-progress")
    healthy = make_mission(status="in-progress")
    broken_id, healthy_id = broken.id, healthy.id

    class FlakyAdvancer(PositionAdvancer):
        def advance(self, mission_id):
            if mission_id == broken_id:
                raise StoreWriteFailure("database is locked")
            return super().advance(mission_id)

    class FlakyOrchestrator(SimulationOrchestrator):
        def make_advancer(self, session):
            return FlakyAdvancer(session, rng=self.rng, feed=self.feed)

    report = asyncio.run(FlakyOrchestrator(lambda: db, rng=FixedRandom()).run_full_simulation_cycle())

    assert report.failed == {broken_id: "database is locked"}
    assert report.advanced == [healthy_id]


def test_database_error_on_one_mission_rolls_back_and_continues(db, make_mission, monkeypatch):
    broken = make_mission(status="in-progress")
    healthy = make_mission(status="in-progress")
    broken_id, healthy_id = broken.id, healthy.id

    original_latest = PositionService.latest_for_mission

    def latest_for_mission(self, mission_id):
        if mission_id == broken_id:
            raise OperationalError("SELECT gps_positions", {}, Exception("server has gone away"))
        return original_latest(self, mission_id)

    monkeypatch.setattr(PositionService, "latest_for_mission", latest_for_mission)

    rollbacks = []
    original_rollback = db.rollback

    def rollback():
        rollbacks.append(True)
        original_rollback()

    monkeypatch.setattr(db, "rollback", rollback)

    orchestrator = SimulationOrchestrator(lambda: db, rng=FixedRandom())
    report = asyncio.run(orchestrator.run_full_simulation_cycle())

    assert report.failed == {broken_id: "Database error: OperationalError"}
    assert report.advanced == [healthy_id]
    assert rollbacks
    assert orchestrator.last_report is report
    assert count_positions(db, healthy_id) == 1
    assert count_positions(db, broken_id) == 0


def test_unreadable_mission_list_still_records_report(db, make_mission, monkeypatch):
    make_mission(status="in-progress")

    def all_(self):
        raise OperationalError("SELECT missions", {}, Exception("server has gone away"))

    monkeypatch.setattr(Query, "all", all_)

    orchestrator = SimulationOrchestrator(lambda: db, rng=FixedRandom())
    report = asyncio.run(orchestrator.run_full_simulation_cycle())

    assert report.failed == {CYCLE_FAILURE_KEY: "Failed to read missions"}
    assert report.advanced == [] and report.arrived == []
    assert orchestrator.last_report is report


def test_cycle_without_missions(db):
    report = asyncio.run(SimulationOrchestrator(lambda: db).run_full_simulation_cycle())

    assert report.advanced == [] and report.arrived == [] and report.failed == {}


def test_monitoring_loop_stops(db, make_mission):
    mission = make_mission(status="in-progress")
    mission_id = mission.id
    orchestrator = SimulationOrchestrator(lambda: db, rng=FixedRandom())

    async def scenario():
        task = asyncio.create_task(orchestrator.start_monitoring(interval_seconds=0))
        while orchestrator.last_report is None:
            await asyncio.sleep(0)
        orchestrator.stop()
        await asyncio.wait_for(task, timeout=5)

    asyncio.run(scenario())

    assert orchestrator.running is False
    assert orchestrator.interval_seconds == 0
    assert count_positions(db, mission_id) >= 1
