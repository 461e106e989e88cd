import logging
import os

from dotenv import load_dotenv

# Cargar variables de entorno desde un archivo .env si está disponible.
load_dotenv()


def _env(key, default=None):
    """Lee una variable de entorno aceptando la clave en mayúsculas o minúsculas."""
    value = os.getenv(key)
    if value is None:
        value = os.getenv(key.lower())
    if value is None or value == '':
        return default
    return value


def _env_int(key, default):
    value = _env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


# --- Strava ---
STRAVA_API_URL = "https://www.strava.com/api/v3"
AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
TOKEN_URL = "https://www.strava.com/oauth/token"

CLIENT_ID = _env('STRAVA_CLIENT_ID', '')
CLIENT_SECRET = _env('STRAVA_CLIENT_SECRET', '')
REDIRECT_URI = _env('STRAVA_REDIRECT_URI', '')
SCOPES = _env('STRAVA_SCOPES', 'read,activity:read_all')
CLUB_ID = _env('STRAVA_CLUB_ID')
STRAVA_TIMEOUT = _env_int('STRAVA_TIMEOUT', 10)

# --- Base de datos ---
DATABASE_URL = _env('DATABASE_URL')

# --- Sesión ---
SESSION_SECRET = _env('SESSION_SECRET') or CLIENT_SECRET
SESSION_MAX_AGE_S = 30 * 24 * 60 * 60  # 30 días
ACCESS_COOKIE = 'strava_access_token'
SESSION_COOKIE = 'session'

# --- Reto / campaña ---
START_DATE = _env('START_DATE', '2026-03-01')
TARGET_DATE = _env('TARGET_DATE', '2026-12-31T00:00:00Z')
MONTHLY_FROM = _env('MONTHLY_FROM', '2025-10')

# --- Otros ---
FRONTEND_URL = _env('FRONTEND_URL', '/')
CRON_SECRET = _env('CRON_SECRET')
TOKEN_EXPIRY_BUFFER_S = _env_int('TOKEN_EXPIRY_BUFFER_S', 300)
LOG_LEVEL = (_env('LOG_LEVEL', 'INFO')).upper()


def setup_logging(level=None):
    """Inicializa el logger raíz con un formato común para backend y UI."""
    log_level = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
