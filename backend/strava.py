"""Cliente mínimo de la API de Strava: OAuth, actividades y clubes."""
import logging
import time
from urllib.parse import urlencode

import requests

from backend import config
from backend import db

logger = logging.getLogger(__name__)

# Margen antes de la expiración para considerar el token caducado
TOKEN_EXPIRY_MARGIN_S = 60


class StravaApiError(Exception):
    def __init__(self, status_code, message):
        super().__init__(f"Strava API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def authorize_url():
    """URL de autorización de Strava para iniciar el login."""
    params = {
        'client_id': config.CLIENT_ID,
        'redirect_uri': config.REDIRECT_URI,
        'response_type': 'code',
        'scope': config.SCOPES,
    }
    return f"{config.AUTHORIZE_URL}?{urlencode(params)}"


def strava_fetch(path, token, params=None):
    """GET autenticado contra la API v3; lanza StravaApiError si la respuesta no es 200."""
    url = f"{config.STRAVA_API_URL}{path}"
    headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
    response = requests.get(url, headers=headers, params=params or {}, timeout=config.STRAVA_TIMEOUT)
    if response.status_code != 200:
        raise StravaApiError(response.status_code, response.text)
    return response.json()


def get_athlete_activities(token, before=None, per_page=200):
    """Actividades del atleta autenticado (sin filtro de inicio, para el desglose mensual)."""
    params = {'per_page': per_page}
    if before:
        params['before'] = before
    return strava_fetch("/athlete/activities", token, params=params)


def get_athlete_clubs(token):
    return strava_fetch("/athlete/clubs", token)


def _post_token(payload):
    response = requests.post(config.TOKEN_URL, data=payload, timeout=config.STRAVA_TIMEOUT)
    if response.status_code != 200:
        raise StravaApiError(response.status_code, response.text)
    return response.json()


def exchange_code(code):
    """Intercambia el código de autorización por tokens (incluye el atleta)."""
    return _post_token({
        'client_id': config.CLIENT_ID,
        'client_secret': config.CLIENT_SECRET,
        'code': code,
        'grant_type': 'authorization_code',
        'redirect_uri': config.REDIRECT_URI,
    })


def refresh_access_token(refresh_token):
    """Pide un nuevo access token a partir del refresh token."""
    return _post_token({
        'client_id': config.CLIENT_ID,
        'client_secret': config.CLIENT_SECRET,
        'grant_type': 'refresh_token',
        'refresh_token': refresh_token,
    })


def ensure_access_token(row, now=None):
    """Devuelve un token válido para el atleta guardado (refresca si es necesario).

    Si el refresh falla se devuelve el token almacenado; Strava decidirá si aún vale.
    """
    now = now if now is not None else time.time()
    access_token = row.get('access_token')
    expires_at = row.get('expires_at')

    if access_token and expires_at and expires_at - TOKEN_EXPIRY_MARGIN_S > now:
        return access_token

    refresh_token = row.get('refresh_token')
    if not refresh_token:
        return access_token

    logger.info("Refrescando token para el atleta %s", row.get('athlete_id'))
    try:
        data = refresh_access_token(refresh_token)
    except (StravaApiError, requests.RequestException) as e:
        logger.warning("No se pudo refrescar el token del atleta %s: %s", row.get('athlete_id'), e)
        return access_token

    db.update_athlete_tokens(
        row['athlete_id'], data['access_token'],
        data.get('refresh_token') or refresh_token, data.get('expires_at'),
    )
    return data['access_token']


def check_club_membership(token, club_id):
    """None si el atleta pertenece al club; si no, un código de error para la UI."""
    try:
        required_id = int(str(club_id).strip())
    except (TypeError, ValueError):
        return 'invalid_club_id'
    try:
        clubs = get_athlete_clubs(token)
    except (StravaApiError, requests.RequestException) as e:
        logger.warning("No se pudo verificar la pertenencia al club: %s", e)
        return 'club_check_failed'
    if any(isinstance(c, dict) and c.get('id') == required_id for c in clubs or []):
        return None
    return 'not_in_club'


def is_run(activity):
    """True si la actividad es de carrera (Run, TrailRun, VirtualRun...)."""
    kind = activity.get('sport_type') or activity.get('type') or ''
    return 'run' in kind.lower()


def hms(total_seconds):
    total_seconds = int(total_seconds)
    h = total_seconds // 3600
    m = (total_seconds % 3600) // 60
    s = total_seconds % 60
    return f"{h:02d}:{m:02d}:{s:02d}"
