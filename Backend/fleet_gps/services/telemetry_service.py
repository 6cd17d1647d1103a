import asyncio
import json
import logging
from typing import Optional

from azure.iot.device.aio import IoTHubDeviceClient
from azure.iot.device import Message

from fleet_gps.core.config import IOT_HUB_CONNECTION_STRING, IOT_DEVICE_ID
from fleet_gps.schemas.schemas import ChangeEventType
from fleet_gps.services.change_feed import ChangeEvent

logger = logging.getLogger(__name__)


def build_telemetry_message(event: ChangeEvent, device_id: str = IOT_DEVICE_ID) -> Message:
    """Construire le message de télémétrie IoT Hub pour une nouvelle position"""
    row = event.row
    telemetry_data = {
        "deviceId": device_id,
        "mission_id": row["mission_id"],
        "vehicle_id": row["vehicle_id"],
        "timestamp": row["timestamp"].isoformat(),
        "latitude": row["latitude"],
        "longitude": row["longitude"],
        "speed": row["speed"],
        "heading": row["heading"],
        "type": "gps_position",
        "messageType": "telemetry"
    }

    message = Message(json.dumps(telemetry_data))
    message.custom_properties["mission_id"] = str(row["mission_id"])
    message.custom_properties["data_type"] = "gps_position"
    message.custom_properties["timestamp"] = row["timestamp"].isoformat()
    message.content_type = "application/json"
    message.content_encoding = "utf-8"
    return message


class TelemetryForwarder:
    """Abonné du flux de changements qui relaie les nouvelles positions vers Azure IoT Hub"""

    def __init__(self, connection_string: str = IOT_HUB_CONNECTION_STRING, device_id: str = IOT_DEVICE_ID):
        self.connection_string = connection_string
        self.device_id = device_id
        self.iot_client = None
        self.queue: Optional[asyncio.Queue] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.running = False

    @property
    def enabled(self) -> bool:
        return bool(self.connection_string)

    async def connect_to_iot_hub(self) -> bool:
        """Établir la connexion avec Azure IoT Hub"""
        try:
            self.iot_client = IoTHubDeviceClient.create_from_connection_string(self.connection_string)
            await self.iot_client.connect()
            logger.info("Connexion établie avec Azure IoT Hub")
            return True
        except Exception as e:
            logger.error(f"Erreur lors de la connexion à IoT Hub: {e}")
            self.iot_client = None
            return False

    async def disconnect_from_iot_hub(self):
        """Fermer la connexion avec Azure IoT Hub"""
        if self.iot_client:
            try:
                await self.iot_client.disconnect()
                logger.info("Déconnexion d'Azure IoT Hub")
            except Exception as e:
                logger.error(f"Erreur lors de la déconnexion: {e}")
            finally:
                self.iot_client = None

    def __call__(self, event: ChangeEvent):
        """Callback du flux: ne retient que les insertions de positions"""
        if event.table != "gps_positions" or event.event_type != ChangeEventType.INSERT:
            return
        if self.queue is None or self.loop is None:
            logger.warning("Relais de télémétrie non démarré, position ignorée")
            return
        # Writes may come from FastAPI's threadpool
        self.loop.call_soon_threadsafe(self.queue.put_nowait, event)

    async def send_event(self, event: ChangeEvent):
        if not self.iot_client:
            logger.warning("Client IoT Hub non connecté")
            return
        try:
            await self.iot_client.send_message(build_telemetry_message(event, self.device_id))
        except Exception as e:
            logger.error(f"Erreur lors de l'envoi vers IoT Hub: {e}")

    async def run(self):
        """Boucle d'envoi; se termine sur stop() ou annulation"""
        self.loop = asyncio.get_running_loop()
        self.queue = asyncio.Queue()
        self.running = True

        if not await self.connect_to_iot_hub():
            logger.error("Impossible de se connecter à IoT Hub, télémétrie désactivée")
            self.running = False
            self.queue = None
            return

        try:
            while True:
                event = await self.queue.get()
                if event is None:
                    break
                await self.send_event(event)
        except asyncio.CancelledError:
            logger.info("Tâche de télémétrie annulée.")
            raise
        finally:
            self.running = False
            await self.disconnect_from_iot_hub()

    def stop(self):
        """Arrêt après envoi des positions déjà en file"""
        if self.queue is not None and self.loop is not None:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, None)
