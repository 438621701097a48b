"""
Configuration for the drop zone engine processes.
Values come from the environment (a .env file is loaded if present).
"""

import os

from dotenv import load_dotenv

from .types import EnginePolicy, LoadPolicy

# Load environment variables from .env file
load_dotenv()

# Data service the HTTP repository talks to
DATA_SERVICE_URL = os.getenv("DROPZONE_DATA_URL", "http://localhost:9000")
DATA_SERVICE_TIMEOUT = float(os.getenv("DROPZONE_DATA_TIMEOUT", "10"))

# Auto-assign run loop
POLL_INTERVAL_SECONDS = float(os.getenv("DROPZONE_POLL_INTERVAL", "5"))

# Load policy
DEFAULT_CAPACITY = int(os.getenv("DROPZONE_DEFAULT_CAPACITY", "18"))
ALLOW_READY_LOADS = os.getenv("DROPZONE_ALLOW_READY_LOADS", "false").lower() in ("1", "true", "yes")
WRITE_RETRIES = int(os.getenv("DROPZONE_WRITE_RETRIES", "2"))
VIDEO_PAIR_WEIGHT = os.getenv("DROPZONE_VIDEO_PAIR_WEIGHT", "false").lower() in ("1", "true", "yes")

# HTTP API
SERVER_HOST = os.getenv("DROPZONE_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("DROPZONE_PORT", "8001"))

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def engine_policy() -> EnginePolicy:
    """Engine policy built from the environment."""
    return EnginePolicy(
        load=LoadPolicy(default_capacity=DEFAULT_CAPACITY, allow_ready_loads=ALLOW_READY_LOADS),
        write_retries=WRITE_RETRIES,
        video_pair_weight=VIDEO_PAIR_WEIGHT
    )
