"""Agregación de actividades por atleta, ranking y desglose mensual."""
import logging
import math
import re
import time
from datetime import datetime, timedelta, timezone

import requests

from backend import config
from backend import strava
from backend.projection import project_runs_active_days, project_runs_active_weeks

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
]
MEDALS = {1: 'gold', 2: 'silver', 3: 'bronze'}

_ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_DMY_DATE = re.compile(r'^\d{2}-\d{2}-\d{4}$')


# --- 1. Fechas ---

def parse_date_to_epoch(value):
    """'YYYY-MM-DD' o 'DD-MM-YYYY' a las 00:00 UTC → epoch en segundos; None si no es válida."""
    if not value:
        return None
    value = value.strip()
    try:
        if _ISO_DATE.match(value):
            d = datetime.strptime(value, '%Y-%m-%d')
        elif _DMY_DATE.match(value):
            d = datetime.strptime(value, '%d-%m-%Y')
        else:
            return None
    except ValueError:
        return None
    return int(d.replace(tzinfo=timezone.utc).timestamp())


def parse_target_to_epoch(value, fallback=None):
    """Fecha objetivo de la proyección; si no es válida se usa TARGET_DATE."""
    if fallback is None:
        fallback = _parse_iso_datetime(config.TARGET_DATE)
    parsed = _parse_iso_datetime(value) if value else None
    return parsed if parsed is not None else fallback


def _parse_iso_datetime(value):
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def effective_after_epoch(after_epoch, campaign_start_epoch):
    """El filtro 'after' nunca puede ser anterior al inicio del reto."""
    if after_epoch and campaign_start_epoch:
        return max(after_epoch, campaign_start_epoch)
    return after_epoch or campaign_start_epoch


def activity_timestamp_ms(activity):
    """Timestamp UTC (ms) de 'start_date', o None si falta o no se puede leer."""
    date_str = activity.get('start_date')
    if not date_str:
        return None
    try:
        dt = datetime.fromisoformat(date_str.replace('Z', '+00:00'))
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp() * 1000


def to_iso(ms):
    if not ms:
        return None
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def format_pace(min_per_km):
    """Minutos decimales por km → 'm:ss' ('-' si no hay ritmo)."""
    if min_per_km is None or not math.isfinite(min_per_km) or min_per_km <= 0:
        return '-'
    total_seconds = int(math.floor(min_per_km * 60 + 0.5))
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


# --- 2. Agregación por atleta ---

def _empty_stats():
    return {
        'total_dist_m': 0.0,
        'max_dist_m': 0.0,
        'total_time_s': 0,
        'best_pace': math.inf,
        'last_run_at_ms': 0,
    }


def _add_run(stats, activity):
    distance = activity.get('distance') or 0
    moving_time = activity.get('moving_time') or 0
    stats['total_dist_m'] += distance
    stats['max_dist_m'] = max(stats['max_dist_m'], distance)
    stats['total_time_s'] += moving_time
    dist_km = distance / 1000
    time_min = moving_time / 60
    if dist_km > 0 and time_min > 0:
        pace = time_min / dist_km
        if pace < stats['best_pace']:
            stats['best_pace'] = pace


def longest_gap_days(day_keys):
    """Mayor número de días consecutivos sin actividad entre días activos."""
    days = sorted(datetime.strptime(d, '%Y-%m-%d') for d in day_keys)
    if not days:
        return None
    longest = 0
    for prev, cur in zip(days, days[1:]):
        longest = max(longest, (cur - prev).days - 1)
    return max(0, longest)


def aggregate_athlete(activities, after_epoch=None, before_epoch=None):
    """Estadísticas de un atleta a partir de sus actividades de Strava.

    Totales, ritmo y desglose mensual usan todas las carreras; el conteo de
    carreras (días activos), semanas activas y hueco más largo solo las del reto.
    """
    runs = [a for a in activities if strava.is_run(a)]
    agg = _empty_stats()
    agg['first_run_at_ms'] = math.inf
    monthly = {}
    campaign_days = set()
    campaign_weeks = set()

    for act in runs:
        _add_run(agg, act)
        ts = activity_timestamp_ms(act)
        if ts is None:
            continue
        agg['last_run_at_ms'] = max(agg['last_run_at_ms'], ts)
        agg['first_run_at_ms'] = min(agg['first_run_at_ms'], ts)

        day = datetime.fromtimestamp(ts / 1000, tz=timezone.utc).date()
        day_key = day.isoformat()
        month = monthly.setdefault(day_key[:7], dict(_empty_stats(), days=set()))
        _add_run(month, act)
        month['last_run_at_ms'] = max(month['last_run_at_ms'], ts)
        month['days'].add(day_key)

        in_campaign = ((not after_epoch or ts >= after_epoch * 1000)
                       and (not before_epoch or ts < before_epoch * 1000))
        if in_campaign:
            campaign_days.add(day_key)
            # Semana ISO: se identifica por su lunes
            monday = day - timedelta(days=day.weekday())
            campaign_weeks.add(monday.isoformat())

    for month in monthly.values():
        month['runs'] = len(month['days'])

    agg['active_days'] = len(campaign_days)
    agg['runs'] = agg['active_days']
    agg['active_weeks'] = len(campaign_weeks)
    agg['longest_gap_days'] = longest_gap_days(campaign_days)
    agg['monthly'] = monthly
    return agg


def _stats_fields(stats, active_days):
    total_km = stats['total_dist_m'] / 1000
    total_min = stats['total_time_s'] / 60
    best = stats['best_pace']
    return {
        'total_distance_km': round(total_km, 2),
        'max_distance_km': round(stats['max_dist_m'] / 1000, 2),
        'total_run_time_hms': strava.hms(stats['total_time_s']),
        'average_run_time_mins': round(total_min / active_days, 2) if active_days > 0 else 0,
        'average_pace_min_per_km': round(total_min / total_km, 2) if total_km > 0 else 0,
        'best_pace_min_per_km': 0 if best == math.inf else round(best, 2),
        'last_run': to_iso(stats['last_run_at_ms']),
    }


def athlete_name(row):
    name = f"{row.get('firstname') or ''} {row.get('lastname') or ''}".strip()
    return name or f"Athlete {row['athlete_id']}"


def build_row(row, agg, after_epoch, target_epoch, now_epoch=None):
    """Fila del leaderboard con estadísticas y proyección de carreras."""
    months = agg['monthly']
    total_active_days = sum(m['runs'] for m in months.values())
    avg_runs_per_month = round(total_active_days / len(months), 1) if months else 0

    result = {
        'athlete_id': row['athlete_id'],
        'athlete_name': athlete_name(row),
        'profile': row.get('profile'),
        'total_runs': agg['runs'],
        'projected_runs': project_runs_active_days(
            runs=agg['runs'],
            active_days=agg['active_days'],
            first_run_at_ms=agg['first_run_at_ms'],
            after_epoch=after_epoch,
            target_epoch=target_epoch,
            now_epoch=now_epoch,
            longest_gap_days=agg['longest_gap_days'],
        ),
        'projected_runs_weekly': project_runs_active_weeks(
            runs=agg['runs'],
            active_weeks=agg['active_weeks'],
            first_run_at_ms=agg['first_run_at_ms'],
            after_epoch=after_epoch,
            target_epoch=target_epoch,
            now_epoch=now_epoch,
        ),
        'active_weeks': agg['active_weeks'],
        'longest_gap_days': agg['longest_gap_days'],
        'avg_runs_per_month': avg_runs_per_month,
    }
    result.update(_stats_fields(agg, total_active_days))
    return result


# --- 3. Ranking y desglose mensual ---

def _sort_key(r):
    return (-r['total_runs'], -r['total_distance_km'])


def rank_rows(rows):
    """Ordena por carreras (desc) y desempata por km totales; añade posición y medalla."""
    ranked = sorted(rows, key=_sort_key)
    for idx, r in enumerate(ranked):
        position = idx + 1
        r['position'] = position
        r['medal'] = MEDALS.get(position)
    return ranked


def month_label(month_key):
    yyyy, mm = (int(p) for p in month_key.split('-'))
    return f"{MONTH_NAMES[mm - 1]} {yyyy}"


def build_monthly(monthly_by_athlete, athletes_by_id, month_from=None, current_month=None):
    """Corredores por mes, del más reciente al más antiguo."""
    month_from = month_from or config.MONTHLY_FROM
    current_month = current_month or datetime.now(timezone.utc).strftime('%Y-%m')

    all_months = set()
    for months in monthly_by_athlete.values():
        all_months.update(months.keys())
    months_sorted = sorted((m for m in all_months if month_from <= m <= current_month), reverse=True)

    result = []
    for mk in months_sorted:
        runners = []
        for aid, months in monthly_by_athlete.items():
            m = months.get(mk)
            if not m or m['runs'] == 0:
                continue
            row = athletes_by_id.get(aid, {'athlete_id': aid})
            runner = {
                'athlete_id': aid,
                'athlete_name': athlete_name(row),
                'profile': row.get('profile'),
                'runs': m['runs'],
            }
            runner.update(_stats_fields(m, m['runs']))
            runners.append(runner)
        runners.sort(key=lambda r: (-r['runs'], -r['total_distance_km']))
        result.append({'month': mk, 'label': month_label(mk), 'runners': runners})
    return result


def build_leaderboard(athletes, after=None, before=None, target=None, now_epoch=None,
                      fetch_activities=None, ensure_token=None):
    """Leaderboard completo para todos los atletas autorizados.

    after/before: fechas de filtro ('YYYY-MM-DD' o 'DD-MM-YYYY').
    target: fecha objetivo de la proyección (ISO).
    Un atleta cuyo token o descarga falla se omite sin romper el resto.
    """
    fetch_activities = fetch_activities or strava.get_athlete_activities
    ensure_token = ensure_token or strava.ensure_access_token
    now_epoch = now_epoch if now_epoch is not None else int(time.time())

    before_epoch = parse_date_to_epoch(before)
    after_epoch = effective_after_epoch(parse_date_to_epoch(after), parse_date_to_epoch(config.START_DATE))
    target_epoch = parse_target_to_epoch(target)

    rows = []
    monthly_by_athlete = {}
    athletes_by_id = {a['athlete_id']: a for a in athletes}
    for row in athletes:
        access = ensure_token(row)
        if not access:
            logger.info("Atleta %s sin token válido; se omite", row['athlete_id'])
            continue
        try:
            activities = fetch_activities(access, before=before_epoch)
        except (strava.StravaApiError, requests.RequestException) as e:
            logger.warning("Error obteniendo actividades del atleta %s: %s", row['athlete_id'], e)
            continue

        agg = aggregate_athlete(activities or [], after_epoch, before_epoch)
        monthly_by_athlete[row['athlete_id']] = agg['monthly']
        rows.append(build_row(row, agg, after_epoch, target_epoch, now_epoch))

    current_month = datetime.fromtimestamp(now_epoch, tz=timezone.utc).strftime('%Y-%m')
    return {
        'leaderboard': rank_rows(rows),
        'monthly': build_monthly(monthly_by_athlete, athletes_by_id, current_month=current_month),
    }
