import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet_gps.core.exceptions import SimulationError
from fleet_gps.schemas.schemas import CycleReport
from fleet_gps.services.change_feed import ChangeFeed
from fleet_gps.services.mission_service import MissionService
from fleet_gps.services.simulator_service import PositionAdvancer

logger = logging.getLogger(__name__)

# Clé de CycleReport.failed quand la liste des missions en cours est illisible
CYCLE_FAILURE_KEY = "*"


class SimulationOrchestrator:
    """
    Fait avancer périodiquement toutes les missions en cours, un pas par mission et par cycle.
    Les cycles sont sérialisés: deux cycles ne touchent jamais la même mission en même temps.
    Le statut des missions arrivées n'est pas modifié.
    """

    def __init__(self, session_factory: Callable[[], Session],
                 feed: Optional[ChangeFeed] = None, rng=None):
        self.session_factory = session_factory
        self.feed = feed
        self.rng = rng
        self.running = False
        self.interval_seconds: Optional[int] = None
        self.last_report: Optional[CycleReport] = None
        self._cycle_lock = asyncio.Lock()

    def make_advancer(self, db: Session) -> PositionAdvancer:
        return PositionAdvancer(db, rng=self.rng, feed=self.feed)

    async def run_full_simulation_cycle(self) -> CycleReport:
        async with self._cycle_lock:
            report = CycleReport(started_at=datetime.now(timezone.utc))
            logger.info("Début d'un cycle de simulation GPS.")

            db = self.session_factory()
            try:
                try:
                    mission_ids = [m.id for m in MissionService(db).get_in_progress_missions()]
                except SimulationError as e:
                    logger.error(f"Impossible de lister les missions en cours: {e.message}")
                    report.failed[CYCLE_FAILURE_KEY] = e.message
                    mission_ids = []
                else:
                    if not mission_ids:
                        logger.info("Aucune mission en cours trouvée pour ce cycle.")

                advancer = self.make_advancer(db)
                for mission_id in mission_ids:
                    try:
                        result = advancer.advance(mission_id)
                    except SimulationError as e:
                        logger.error(f"Échec de la simulation pour la mission {mission_id}: {e.message}")
                        report.failed[mission_id] = e.message
                        continue
                    except SQLAlchemyError as e:
                        db.rollback()
                        logger.error(f"Erreur base de données pour la mission {mission_id}: {e}")
                        report.failed[mission_id] = f"Database error: {type(e).__name__}"
                        continue

                    if result.arrived:
                        report.arrived.append(mission_id)
                    else:
                        report.advanced.append(mission_id)

                    # Yield between missions
                    await asyncio.sleep(0)
            finally:
                db.close()

            report.finished_at = datetime.now(timezone.utc)
            self.last_report = report
            logger.info(
                f"Cycle de simulation terminé: {len(report.advanced)} avancée(s), "
                f"{len(report.arrived)} arrivée(s), {len(report.failed)} échec(s)."
            )
            return report

    async def start_monitoring(self, interval_seconds: int = 10):
        """
        Démarre la boucle qui exécute des cycles de simulation périodiquement.
        """
        self.running = True
        self.interval_seconds = interval_seconds
        logger.info(f"Démarrage du monitoring de simulation (intervalle: {interval_seconds}s)")
        while self.running:
            try:
                await self.run_full_simulation_cycle()
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                logger.info("Tâche de monitoring de simulation annulée.")
                break
            except Exception as e:
                logger.error(f"Erreur dans la boucle de monitoring: {e}")
                await asyncio.sleep(interval_seconds)
        self.running = False
        logger.info("Boucle de monitoring de simulation terminée.")

    def stop(self):
        """Arrête la boucle de monitoring de simulation."""
        self.running = False
        logger.info("Signal d'arrêt envoyé à l'orchestrateur de simulation.")
