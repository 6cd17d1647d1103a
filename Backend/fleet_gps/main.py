import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fleet_gps.api.endpoints import simulation
from fleet_gps.api.endpoints import missions
from fleet_gps.api.endpoints import fleet

from fleet_gps.core.config import (
    LOG_LEVEL, CORS_ALLOW_ORIGINS, SIMULATION_AUTOSTART, SIMULATION_INTERVAL_SECONDS
)
from fleet_gps.core.database import Base, engine, SessionLocal
from fleet_gps.core.exceptions import SimulationError
from fleet_gps.schemas.schemas import SimulationStatusResponse
from fleet_gps.services.change_feed import change_feed
from fleet_gps.services.simulation_orchestrator import SimulationOrchestrator
from fleet_gps.services.telemetry_service import TelemetryForwarder

# Configuration du logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

# Services globaux et tâches d'arrière-plan
simulation_orchestrator: Optional[SimulationOrchestrator] = None
orchestrator_task: Optional[asyncio.Task] = None
manual_cycle_task: Optional[asyncio.Task] = None
telemetry_forwarder: Optional[TelemetryForwarder] = None
telemetry_task: Optional[asyncio.Task] = None


async def _cancel_task(task: Optional[asyncio.Task], name: str):
    if task and not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info(f"Tâche {name} annulée.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Démarrage: création des tables, relais de télémétrie (si configuré) et
    orchestrateur de simulation (si SIMULATION_AUTOSTART).
    """
    global simulation_orchestrator, orchestrator_task, telemetry_forwarder, telemetry_task

    Base.metadata.create_all(bind=engine)
    logger.info("Tables de la base de données vérifiées/créées.")

    unsubscribe_telemetry = None
    telemetry_forwarder = TelemetryForwarder()
    if telemetry_forwarder.enabled:
        unsubscribe_telemetry = change_feed.subscribe(telemetry_forwarder)
        telemetry_task = asyncio.create_task(telemetry_forwarder.run())
        logger.info("Relais de télémétrie IoT Hub démarré.")
    else:
        logger.info("IOT_HUB_CONNECTION_STRING absent, télémétrie désactivée.")

    simulation_orchestrator = SimulationOrchestrator(SessionLocal, feed=change_feed)
    if SIMULATION_AUTOSTART:
        orchestrator_task = asyncio.create_task(
            simulation_orchestrator.start_monitoring(interval_seconds=SIMULATION_INTERVAL_SECONDS)
        )
        logger.info("Tâche de l'orchestrateur de simulation démarrée en arrière-plan.")

    yield

    logger.info("Arrêt de l'application FastAPI...")
    simulation_orchestrator.stop()
    await _cancel_task(orchestrator_task, "de l'orchestrateur de simulation")
    await _cancel_task(manual_cycle_task, "du cycle manuel")

    if unsubscribe_telemetry:
        unsubscribe_telemetry()
        telemetry_forwarder.stop()
        try:
            await asyncio.wait_for(telemetry_task, timeout=5)
        except asyncio.TimeoutError:
            logger.warning("Relais de télémétrie arrêté avant la fin de l'envoi des positions en file.")

    logger.info("Services et orchestrateur arrêtés.")


app = FastAPI(
    title="Fleet GPS Simulation API",
    description="Simulation des positions GPS des véhicules en mission et lecture de l'état de la flotte.",
    version="1.0.0",
    lifespan=lifespan
)

# Configuration CORS (Cross-Origin Resource Sharing)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.exception_handler(SimulationError)
async def simulation_error_handler(request: Request, exc: SimulationError):
    logger.warning(f"{request.method} {request.url.path}: {type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # The simulation procedure reports malformed bodies in its own error shape
    if request.url.path == "/simulate-gps":
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})
    return await request_validation_exception_handler(request, exc)


app.include_router(simulation.router)
app.include_router(missions.router)
app.include_router(fleet.router)


@app.get("/")
async def root():
    """Endpoint racine de l'API."""
    return {"message": "Welcome to the Fleet GPS Simulation API!"}


@app.post("/simulate/run", summary="Déclencher manuellement un cycle de simulation")
async def run_simulation_manually():
    """
    Déclenche un cycle unique: chaque mission en cours avance d'un pas.
    Le cycle s'exécute en arrière-plan et attend la fin d'un cycle déjà en cours.
    """
    if not simulation_orchestrator:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="L'orchestrateur de simulation n'est pas initialisé. Veuillez redémarrer l'application."
        )

    global manual_cycle_task
    manual_cycle_task = asyncio.create_task(simulation_orchestrator.run_full_simulation_cycle())
    logger.info("Déclenchement manuel d'un cycle de simulation GPS.")

    return {"message": "Un cycle de simulation a été déclenché en arrière-plan. Vérifiez les logs pour les détails."}


@app.get("/simulate/status", response_model=SimulationStatusResponse,
         summary="Obtenir le statut de la tâche de simulation en arrière-plan")
async def get_simulation_status():
    status_info = SimulationStatusResponse(
        is_running=False,
        details="La tâche de l'orchestrateur n'est pas démarrée ou a terminé.",
    )

    if manual_cycle_task:
        status_info.manual_cycle_running = not manual_cycle_task.done()

    if simulation_orchestrator:
        status_info.interval_seconds = simulation_orchestrator.interval_seconds
        status_info.last_cycle = simulation_orchestrator.last_report

    if orchestrator_task:
        status_info.is_running = not orchestrator_task.done()
        if orchestrator_task.done():
            if not orchestrator_task.cancelled() and orchestrator_task.exception():
                status_info.details = f"La tâche de l'orchestrateur a échoué: {orchestrator_task.exception()}"
            else:
                status_info.details = "La tâche de l'orchestrateur a terminé."
        else:
            status_info.details = "La tâche de l'orchestrateur est en cours d'exécution."

    return status_info
