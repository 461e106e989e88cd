"""Refresca los tokens de Strava que han caducado o están a punto de caducar.

Pensado para ejecutarse periódicamente (cron) o desde /api/tokens/refresh:

    python -m backend.token_refresh --athlete-id 123 --force
"""
import argparse
import json
import logging
import time

import requests

from backend import config
from backend import db
from backend import strava

logger = logging.getLogger(__name__)


def is_expiring_soon(expires_at, buffer_s, now=None):
    """Un token sin fecha de expiración se trata como caducado."""
    if not expires_at:
        return True
    now = now if now is not None else time.time()
    return expires_at <= now + buffer_s


def refresh_expiring_tokens(athlete_id=None, force=False, buffer_s=None, now=None):
    """Refresca los tokens candidatos y devuelve un resumen por atleta."""
    buffer_s = 0 if force else (config.TOKEN_EXPIRY_BUFFER_S if buffer_s is None else buffer_s)

    athletes = db.list_athletes(athlete_id)
    if athletes is None:
        raise RuntimeError("No se pudo cargar la lista de atletas")

    with_refresh = [a for a in athletes if a.get('refresh_token')]
    if force:
        candidates = with_refresh
    else:
        candidates = [a for a in with_refresh if is_expiring_soon(a.get('expires_at'), buffer_s, now)]

    results = []
    for row in candidates:
        try:
            data = strava.refresh_access_token(row['refresh_token'])
            db.update_athlete_tokens(
                row['athlete_id'], data['access_token'],
                data.get('refresh_token') or row['refresh_token'], data.get('expires_at'),
            )
            results.append({'athlete_id': row['athlete_id'], 'status': 'refreshed'})
        except (strava.StravaApiError, requests.RequestException, KeyError) as e:
            logger.warning("Fallo refrescando el token del atleta %s: %s", row['athlete_id'], e)
            results.append({'athlete_id': row['athlete_id'], 'status': 'failed', 'message': str(e)})

    return {
        'count': len(results),
        'total_athletes': len(athletes),
        'candidates_count': len(candidates),
        'force': force,
        'buffer_s': buffer_s,
        'results': results,
    }


def main(argv=None):
    parser = argparse.ArgumentParser(description="Refresca tokens de Strava próximos a caducar")
    parser.add_argument('--athlete-id', type=int, default=None)
    parser.add_argument('--force', action='store_true', help="Refrescar aunque no estén caducando")
    parser.add_argument('--buffer-s', type=int, default=None)
    args = parser.parse_args(argv)

    config.setup_logging()
    summary = refresh_expiring_tokens(args.athlete_id, args.force, args.buffer_s)
    print(json.dumps(summary, indent=2))
    return 0 if all(r['status'] == 'refreshed' for r in summary['results']) else 1


if __name__ == '__main__':
    raise SystemExit(main())
