# aura_cli/core/config.py
from pathlib import Path
import os

# Base URL of the Aura API
BASE_URL = os.environ.get("AURA_API_URL", "http://localhost:8000").rstrip("/")

# Seconds to wait for the API before giving up
REQUEST_TIMEOUT = float(os.environ.get("AURA_API_TIMEOUT", "10"))

# Local data directory (session tokens)
APP_DIR = Path(os.environ.get("AURA_HOME", Path.home() / ".aura"))

SESSION_FILE = APP_DIR / "session.json"
