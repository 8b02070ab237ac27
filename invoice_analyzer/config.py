import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load .env from the Root Directory
ROOT_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=ROOT_DIR / ".env")

# ============================================================================
# Database
# ============================================================================
MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017/")
DB_NAME = os.getenv("DB_NAME", "invoice_analyzer_db")

DEFAULT_RESTAURANT_NAME = os.getenv("DEFAULT_RESTAURANT_NAME", "Los Pinos")
DEFAULT_LOCATION = os.getenv("DEFAULT_LOCATION", "Bee Caves")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name.upper())
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        logging.getLogger(__name__).warning(f"Ignoring non-numeric {name.upper()}={value!r}")
        return default


# ============================================================================
# Analysis Thresholds (all percentages)
# ============================================================================
CONFIG = {
    'price_change_threshold': _env_float('price_change_threshold', 20.0),      # adjacent invoices
    'deviation_threshold': _env_float('deviation_threshold', 30.0),            # latest vs. average
    'volatility_threshold': _env_float('volatility_threshold', 25.0),          # coefficient of variation
    'min_volatility_points': int(_env_float('min_volatility_points', 3)),
    'pack_increase_threshold': _env_float('pack_increase_threshold', 5.0),     # same pack size, first vs. last
    'dashboard_alert_threshold': _env_float('dashboard_alert_threshold', 15.0),
}

# Paths (an empty LOG_FILE logs to the console only)
LOG_FILE = os.getenv("LOG_FILE", "invoice_analyzer.log")
PATHS = {
    'data_dir': Path(os.getenv("DATA_DIR", "data/invoices")),
    'log_file': Path(LOG_FILE) if LOG_FILE else None,
}


def build_log_handlers(log_file=None):
    """Console handler, plus a file handler when a log file is configured."""
    handlers = [logging.StreamHandler()]
    log_file = log_file or PATHS['log_file']
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    return handlers


def setup_logging(level=None, log_file=None):
    """Configure the root logger for command-line and dashboard entry points."""
    if logging.getLogger().handlers:
        # Already configured; Streamlit re-runs app.py on every interaction
        return
    level = level or os.getenv("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=build_log_handlers(log_file),
    )
