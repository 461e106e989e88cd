"""Token de sesión firmado con HMAC para sesiones largas del navegador.

Formato: `{athlete_id}.{epoch_segundos}.{firma_hex}`. No va cifrado (el id del
atleta es visible) pero no puede falsificarse sin el secreto del servidor.
"""
import hashlib
import hmac
import time

from backend import config


def _sign(payload):
    secret = (config.SESSION_SECRET or '').encode()
    return hmac.new(secret, payload.encode(), hashlib.sha256).hexdigest()


def create_session_token(athlete_id, now=None):
    """Crea un token firmado para el atleta."""
    timestamp = int(now if now is not None else time.time())
    payload = f"{athlete_id}.{timestamp}"
    return f"{payload}.{_sign(payload)}"


def verify_session_token(token, now=None):
    """Devuelve {'athlete_id', 'timestamp'} si el token es válido, o None."""
    if not token:
        return None
    parts = token.split('.')
    if len(parts) != 3:
        return None

    aid_str, ts_str, sig = parts
    expected = _sign(f"{aid_str}.{ts_str}")
    # Comparación en tiempo constante
    if not hmac.compare_digest(sig.encode(), expected.encode()):
        return None

    try:
        athlete_id = int(aid_str)
        timestamp = int(ts_str)
    except ValueError:
        return None

    current = int(now if now is not None else time.time())
    if current - timestamp > config.SESSION_MAX_AGE_S:
        return None
    return {'athlete_id': athlete_id, 'timestamp': timestamp}
