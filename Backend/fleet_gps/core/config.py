import os

# Configuration
DATABASE_URL = os.getenv("DATABASE_URL", "mysql+pymysql://root:@localhost/fleet_supervision")
IOT_HUB_CONNECTION_STRING = os.getenv("IOT_HUB_CONNECTION_STRING", "")
IOT_DEVICE_ID = os.getenv("IOT_DEVICE_ID", "fleet-simulator")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ALLOW_ORIGINS = [
    origin.strip() for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if origin.strip()
]

SIMULATION_AUTOSTART = os.getenv("SIMULATION_AUTOSTART", "true").lower() in ("1", "true", "yes")
SIMULATION_INTERVAL_SECONDS = int(os.getenv("SIMULATION_INTERVAL_SECONDS", "10"))

# GPS simulation constants, in raw degree units (not kilometers)
ARRIVAL_THRESHOLD_DEG = 0.01  # ~1 km at mid latitudes
STEP_FRACTION = 0.02
JITTER_SPAN_DEG = 0.001
MIN_SPEED_KMH = 60
SPEED_SPAN_KMH = 40
