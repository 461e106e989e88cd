"""Proyección del número de carreras de un atleta hasta una fecha objetivo.

Modelo de densidad: se mide la fracción de días (o semanas) activos desde el
inicio del reto hasta ahora y se extrapola linealmente hasta la fecha objetivo.
La variante diaria aplica además un factor de constancia basado en el hueco de
inactividad más largo; la semanal no (la semana ya suaviza los huecos diarios).

Funciones puras: sin I/O ni estado compartido. `now_epoch` es inyectable para
que los resultados sean deterministas.
"""
import math
import time

SECONDS_PER_DAY = 86400
SECONDS_PER_WEEK = 604800

# Factor mínimo de constancia: nunca se descuenta más del 70%
MIN_CONSISTENCY_FACTOR = 0.3
GAP_DECAY_DAYS = 7


def _round_half_up(value):
    # round() de Python redondea al par; aquí .5 siempre sube
    return int(math.floor(value + 0.5))


def _clean_count(value):
    """Convierte conteos no finitos/negativos/None en 0."""
    if value is None:
        return 0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return value


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def resolve_start_epoch(first_run_at_ms, after_epoch=None):
    """Epoch (segundos) desde el que se mide la densidad, o None si no hay referencia."""
    if after_epoch is not None:
        return int(math.floor(after_epoch)) if _is_number(after_epoch) else None
    if _is_number(first_run_at_ms) and first_run_at_ms > 0:
        return int(math.floor(first_run_at_ms / 1000))
    return None


def consistency_factor(longest_gap_days=None):
    """Penalización por el hueco de inactividad más largo, en [0.3, 1.0].

    0 días → 1.0, 7 días → 0.5, y nunca por debajo de 0.3.
    """
    if longest_gap_days == math.inf:
        return MIN_CONSISTENCY_FACTOR
    lgd = math.floor(_clean_count(longest_gap_days))
    return max(MIN_CONSISTENCY_FACTOR, 1 / (1 + lgd / GAP_DECAY_DAYS))


def _project(runs, active_units, first_run_at_ms, after_epoch, target_epoch,
             now_epoch, unit_seconds, longest_gap_days=None, apply_gap_penalty=False):
    runs = _clean_count(runs)
    if runs <= 0:
        return 0
    runs = int(runs) if float(runs).is_integer() else runs

    start_epoch = resolve_start_epoch(first_run_at_ms, after_epoch)
    if start_epoch is None or not _is_number(target_epoch) or target_epoch <= start_epoch:
        # Sin referencia fiable no se extrapola
        return int(runs)

    if now_epoch is None:
        now_epoch = int(time.time())
    elif not _is_number(now_epoch):
        return int(runs)

    units_elapsed = max(1, math.floor((now_epoch - start_epoch) / unit_seconds))
    units_total = max(units_elapsed, math.floor((target_epoch - start_epoch) / unit_seconds))

    safe_active = max(1, _clean_count(active_units))
    active_rate = safe_active / units_elapsed
    if not math.isfinite(active_rate * units_total):
        return int(runs)
    projected_active = _round_half_up(active_rate * units_total)
    runs_per_active = runs / safe_active
    projected_runs = projected_active * runs_per_active

    if apply_gap_penalty:
        projected_runs = projected_runs * consistency_factor(longest_gap_days)

    if not math.isfinite(projected_runs):
        return int(runs)

    return int(max(runs, _round_half_up(projected_runs)))


def project_runs_active_days(runs, active_days, first_run_at_ms, after_epoch,
                             target_epoch, now_epoch=None, longest_gap_days=None):
    """Proyecta carreras a `target_epoch` usando la densidad de días activos.

    runs: carreras (o días activos) ya observados.
    active_days: días naturales (UTC) distintos con al menos una carrera.
    first_run_at_ms: timestamp en ms de la primera carrera, `math.inf` si no hay.
    after_epoch: inicio explícito del reto en segundos; tiene prioridad.
    longest_gap_days: hueco más largo sin actividad, aplica el factor de constancia.

    Nunca devuelve menos que `runs`.
    """
    return _project(runs, active_days, first_run_at_ms, after_epoch, target_epoch,
                    now_epoch, SECONDS_PER_DAY, longest_gap_days=longest_gap_days,
                    apply_gap_penalty=True)


def project_runs_active_weeks(runs, active_weeks, first_run_at_ms, after_epoch,
                              target_epoch, now_epoch=None):
    """Igual que `project_runs_active_days` pero por semanas ISO y sin penalización."""
    return _project(runs, active_weeks, first_run_at_ms, after_epoch, target_epoch,
                    now_epoch, SECONDS_PER_WEEK)
