"""Fixtures compartidas: entorno de prueba, cliente Flask y respuestas HTTP falsas."""
import os
from datetime import datetime, timezone

# El entorno debe quedar fijado antes de importar backend.config
os.environ['STRAVA_CLIENT_ID'] = 'cid'
os.environ['STRAVA_CLIENT_SECRET'] = 'secret'
os.environ['STRAVA_REDIRECT_URI'] = 'http://localhost/api/auth/strava/callback'
os.environ['SESSION_SECRET'] = 'test-session-secret'
os.environ['DATABASE_URL'] = ''
os.environ['STRAVA_CLUB_ID'] = ''
os.environ['CRON_SECRET'] = ''

import pytest

from backend import config
from backend import db


def epoch(iso):
    """'2025-01-01T00:00:00Z' → epoch en segundos."""
    return int(datetime.fromisoformat(iso.replace('Z', '+00:00')).timestamp())


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=''):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        return self._payload


@pytest.fixture
def make_activity():
    def _make(start_date, distance=5000, moving_time=1500, sport_type='Run', activity_id=1):
        return {
            'id': activity_id,
            'name': 'Morning Run',
            'sport_type': sport_type,
            'type': sport_type,
            'start_date': start_date,
            'distance': distance,
            'moving_time': moving_time,
            'elapsed_time': moving_time,
        }
    return _make


@pytest.fixture
def fake_db(monkeypatch):
    """Sustituye el almacenamiento de atletas por un dict en memoria."""
    store = {}
    calls = {'upsert': [], 'update_tokens': []}

    def upsert_athlete(athlete, token_data):
        calls['upsert'].append(athlete['id'])
        store[athlete['id']] = {
            'athlete_id': athlete['id'],
            'firstname': athlete.get('firstname'),
            'lastname': athlete.get('lastname'),
            'profile': athlete.get('profile'),
            'access_token': token_data['access_token'],
            'refresh_token': token_data.get('refresh_token'),
            'expires_at': token_data.get('expires_at'),
        }
        return True

    def list_athletes(athlete_id=None):
        if athlete_id is None:
            return list(store.values())
        return [store[athlete_id]] if athlete_id in store else []

    def get_athlete(athlete_id):
        return store.get(athlete_id)

    def update_athlete_tokens(athlete_id, access_token, refresh_token, expires_at):
        calls['update_tokens'].append((athlete_id, access_token, refresh_token, expires_at))
        if athlete_id in store:
            store[athlete_id].update(access_token=access_token, refresh_token=refresh_token,
                                     expires_at=expires_at)
        return True

    monkeypatch.setattr(db, 'upsert_athlete', upsert_athlete)
    monkeypatch.setattr(db, 'list_athletes', list_athletes)
    monkeypatch.setattr(db, 'get_athlete', get_athlete)
    monkeypatch.setattr(db, 'update_athlete_tokens', update_athlete_tokens)
    return {'store': store, 'calls': calls}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(config, 'CLUB_ID', None)
    monkeypatch.setattr(config, 'CRON_SECRET', None)
    monkeypatch.setattr(config, 'FRONTEND_URL', '/')
    from backend.app import app
    app.config['TESTING'] = True
    with app.test_client() as test_client:
        yield test_client
