import logging
import os
import secrets
from functools import wraps
from urllib.parse import urlencode

import requests
from flask import Flask, jsonify, request, redirect
from flask_cors import CORS

from backend import config
from backend import db
from backend import leaderboard
from backend import strava
from backend import token_refresh
from backend.session import create_session_token, verify_session_token

config.setup_logging()
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app, supports_credentials=True)


def _home(error=None):
    """Redirección a la página principal, opcionalmente con ?error=..."""
    url = config.FRONTEND_URL
    if error:
        url = f"{url}?{urlencode({'error': error})}"
    return redirect(url)


def _clear_auth_cookies(response):
    for name in (config.ACCESS_COOKIE, config.SESSION_COOKIE):
        response.set_cookie(name, '', httponly=True, secure=False, samesite='Lax', path='/', expires=0)
    return response


def _request_access_token():
    """Token de Strava del usuario: cookie directa o sesión firmada + token guardado."""
    token = request.cookies.get(config.ACCESS_COOKIE)
    if token:
        return token
    session_data = verify_session_token(request.cookies.get(config.SESSION_COOKIE))
    if not session_data:
        return None
    row = db.get_athlete(session_data['athlete_id'])
    if not row:
        return None
    return strava.ensure_access_token(row)


def require_cron_secret(f):
    """Decorador para proteger tareas programadas con CRON_SECRET (si está definido)"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not config.CRON_SECRET:
            return f(*args, **kwargs)
        auth_header = request.headers.get('Authorization', '')
        token = auth_header[7:] if auth_header.startswith('Bearer ') else request.args.get('token')
        if token and secrets.compare_digest(token, config.CRON_SECRET):
            return f(*args, **kwargs)
        return jsonify({'error': 'No autorizado'}), 401
    return decorated_function


# ===== ENDPOINTS DE AUTENTICACIÓN =====

@app.route('/api/auth/strava', methods=['GET'])
def auth_strava():
    """Redirige al usuario a la pantalla de autorización de Strava"""
    return redirect(strava.authorize_url())


@app.route('/api/auth/strava/callback', methods=['GET'])
def auth_strava_callback():
    """Intercambia el código por tokens, verifica el club y crea la sesión"""
    if request.args.get('error'):
        return _home()
    code = request.args.get('code')
    if not code:
        return jsonify({'error': 'Falta el código de autorización'}), 400

    try:
        data = strava.exchange_code(code)
    except strava.StravaApiError as e:
        logger.warning("Fallo en el intercambio de código: %s", e)
        return jsonify({'error': f"Token exchange failed: {e.message}"}), e.status_code
    except requests.RequestException as e:
        logger.error("Error de conexión con Strava: %s", e)
        return jsonify({'error': 'No se pudo contactar con Strava'}), 502

    access_token = data['access_token']
    if config.CLUB_ID:
        club_error = strava.check_club_membership(access_token, config.CLUB_ID)
        if club_error:
            logger.info("Login rechazado (%s) para el atleta %s", club_error, (data.get('athlete') or {}).get('id'))
            return _home(club_error)

    athlete = data.get('athlete') or {}
    if athlete.get('id'):
        if not db.upsert_athlete(athlete, data):
            logger.warning("No se pudo guardar el atleta %s", athlete['id'])

    response = _home()
    secure = request.is_secure
    response.set_cookie(config.ACCESS_COOKIE, access_token, httponly=True, secure=secure,
                        samesite='Lax', path='/', expires=data.get('expires_at'))
    if athlete.get('id'):
        response.set_cookie(config.SESSION_COOKIE, create_session_token(athlete['id']), httponly=True,
                            secure=secure, samesite='Lax', path='/', max_age=config.SESSION_MAX_AGE_S)
    return response


@app.route('/api/auth/logout', methods=['GET', 'POST'])
def logout():
    """Cierra la sesión borrando las cookies"""
    return _clear_auth_cookies(_home())


# ===== ENDPOINTS DEL LEADERBOARD =====

@app.route('/api/leaderboard', methods=['GET'])
def get_leaderboard():
    """Ranking del club con estadísticas, proyección y desglose mensual"""
    token = _request_access_token()
    if not token:
        return jsonify({'error': 'No autorizado'}), 401

    if config.CLUB_ID:
        club_error = strava.check_club_membership(token, config.CLUB_ID)
        if club_error == 'club_check_failed':
            return jsonify({'error': 'No autorizado'}), 401
        if club_error:
            return jsonify({'error': 'Forbidden: not in club'}), 403

    athletes = db.list_athletes()
    if athletes is None:
        return jsonify({'error': 'Failed to load athletes'}), 500
    if not athletes:
        return jsonify({'leaderboard': [], 'monthly': []})

    result = leaderboard.build_leaderboard(
        athletes,
        after=request.args.get('after'),
        before=request.args.get('before'),
        target=request.args.get('target'),
    )
    return jsonify(result)


@app.route('/api/debug/clubs', methods=['GET'])
def debug_clubs():
    """Clubes del usuario autenticado (diagnóstico de STRAVA_CLUB_ID)"""
    token = request.cookies.get(config.ACCESS_COOKIE)
    if not token:
        return jsonify({'error': 'No autorizado'}), 401
    try:
        return jsonify(strava.get_athlete_clubs(token))
    except strava.StravaApiError as e:
        return jsonify({'error': e.message}), e.status_code
    except requests.RequestException as e:
        logger.error("Error de conexión con Strava: %s", e)
        return jsonify({'error': 'No se pudo contactar con Strava'}), 502


@app.route('/api/tokens/refresh', methods=['POST'])
@require_cron_secret
def refresh_tokens():
    """Refresca tokens caducados o próximos a caducar"""
    athlete_id = request.args.get('athlete_id', type=int)
    force = (request.args.get('force') or '').lower() == 'true'
    buffer_s = request.args.get('buffer_s', type=int)
    try:
        summary = token_refresh.refresh_expiring_tokens(athlete_id, force, buffer_s)
    except RuntimeError as e:
        logger.error("Error en el refresco de tokens: %s", e)
        return jsonify({'error': str(e)}), 500
    return jsonify(summary)


@app.route('/api/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok'})


# Inicializar base de datos al importar el módulo (para gunicorn)
db.init_db()

if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    app.run(debug=False, host='0.0.0.0', port=port, threaded=True)
