from backend import config
from backend.session import create_session_token, verify_session_token

NOW = 1_760_000_000


def test_round_trip():
    token = create_session_token(999, now=NOW)
    assert token.startswith('999.1760000000.')
    assert verify_session_token(token, now=NOW + 10) == {'athlete_id': 999, 'timestamp': NOW}


def test_tampered_signature_is_rejected():
    token = create_session_token(999, now=NOW)
    forged = token[:-1] + ('0' if token[-1] != '0' else '1')
    assert verify_session_token(forged, now=NOW) is None


def test_tampered_athlete_is_rejected():
    token = create_session_token(999, now=NOW)
    _, ts, sig = token.split('.')
    assert verify_session_token(f"1000.{ts}.{sig}", now=NOW) is None


def test_expired_token():
    token = create_session_token(5, now=NOW)
    assert verify_session_token(token, now=NOW + config.SESSION_MAX_AGE_S) is not None
    assert verify_session_token(token, now=NOW + config.SESSION_MAX_AGE_S + 1) is None


def test_malformed_tokens():
    assert verify_session_token(None) is None
    assert verify_session_token('') is None
    assert verify_session_token('only.two') is None
    assert verify_session_token('a.b.c.d') is None
    assert verify_session_token('abc.123.ñ') is None


def test_secret_change_invalidates(monkeypatch):
    token = create_session_token(5, now=NOW)
    monkeypatch.setattr(config, 'SESSION_SECRET', 'rotated')
    assert verify_session_token(token, now=NOW) is None
