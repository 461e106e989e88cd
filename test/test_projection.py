"""Tests del modelo de proyección por densidad de días/semanas activos."""
import math

import pytest

from backend.projection import (
    consistency_factor,
    project_runs_active_days,
    project_runs_active_weeks,
    resolve_start_epoch,
)
from conftest import epoch

TARGET = epoch('2025-12-11T14:00:00Z')
START_MS = epoch('2025-01-01T00:00:00Z') * 1000


def days(**overrides):
    params = dict(
        runs=8,
        active_days=8,
        first_run_at_ms=START_MS,
        after_epoch=None,
        target_epoch=TARGET,
        now_epoch=epoch('2025-02-01T00:00:00Z'),
        longest_gap_days=0,
    )
    params.update(overrides)
    return project_runs_active_days(**params)


class TestActiveDays:

    def test_no_start_returns_current_runs(self):
        assert days(runs=5, active_days=5, first_run_at_ms=math.inf,
                    now_epoch=epoch('2025-01-10T00:00:00Z')) == 5

    def test_density_projection(self):
        # 6 carreras en 9 días transcurridos, 344 días hasta el objetivo
        now = epoch('2025-01-10T12:00:00Z')
        start = START_MS // 1000
        days_elapsed = max(1, (now - start) // 86400)
        days_total = max(days_elapsed, (TARGET - start) // 86400)
        assert (days_elapsed, days_total) == (9, 344)
        expected = math.floor(6 / days_elapsed * days_total + 0.5)

        result = days(runs=6, active_days=6, now_epoch=now)
        assert result > 6
        assert result == expected == 229

    def test_target_before_start_does_not_project_backwards(self):
        result = days(runs=10, active_days=5,
                      first_run_at_ms=epoch('2025-01-06T00:00:00Z') * 1000,
                      target_epoch=epoch('2025-01-05T00:00:00Z'),
                      now_epoch=epoch('2025-01-10T00:00:00Z'))
        assert result == 10

    def test_target_equal_to_start_returns_runs(self):
        assert days(runs=4, target_epoch=START_MS // 1000) == 4

    def test_never_below_current_runs(self):
        result = days(runs=12, active_days=2, now_epoch=epoch('2025-01-03T00:00:00Z'))
        assert result >= 12

    def test_multi_run_days(self):
        # 8 carreras en 5 días activos sobre 10 días → 0.8 carreras/día
        result = days(runs=8, active_days=5, now_epoch=epoch('2025-01-11T00:00:00Z'),
                      longest_gap_days=None)
        expected = math.floor((8 / 10) * ((TARGET - START_MS // 1000) // 86400) + 0.5)
        assert result == expected == 275

    def test_explicit_start_overrides_first_run(self):
        # Inicio 6 de enero: 4 días transcurridos, 339 hasta el objetivo
        result = days(runs=6, active_days=6, after_epoch=epoch('2025-01-06T00:00:00Z'),
                      now_epoch=epoch('2025-01-10T12:00:00Z'))
        assert result == 509

    def test_half_rounds_up(self):
        # 89 proyectadas * 0.5 = 44.5 → 45
        assert days(longest_gap_days=7) == 45

    def test_long_gap_reduces_projection(self):
        base = days(longest_gap_days=0)
        penalized = days(longest_gap_days=21)
        assert base == 89
        assert penalized == 27
        assert penalized <= base

    def test_gap_penalty_is_monotonic(self):
        results = [days(longest_gap_days=g) for g in (0, 1, 3, 7, 14, 21, 60, 365)]
        assert results == sorted(results, reverse=True)

    def test_penalty_floor_never_below_runs(self):
        now = epoch('2025-04-11T00:00:00Z')
        result = days(runs=50, active_days=50, now_epoch=now,
                      target_epoch=now + 3600, longest_gap_days=10000)
        assert result == 50

    def test_same_day_uses_one_elapsed_day(self):
        result = days(runs=1, active_days=1, now_epoch=START_MS // 1000 + 3600)
        assert result == 344

    @pytest.mark.parametrize('runs', [0, -3, float('nan'), None])
    def test_no_runs_returns_zero(self, runs):
        assert days(runs=runs) == 0

    def test_invalid_active_units_are_clamped(self):
        assert days(active_days=float('nan')) == days(active_days=0)
        assert days(active_days=-5) == days(active_days=1)

    def test_non_finite_target_returns_runs(self):
        assert days(target_epoch=float('nan')) == 8
        assert days(target_epoch=math.inf) == 8

    def test_nan_gap_is_ignored(self):
        assert days(longest_gap_days=float('nan')) == days(longest_gap_days=0)

    @pytest.mark.parametrize('now', [float('nan'), math.inf, -math.inf])
    def test_non_finite_now_returns_runs(self, now):
        assert days(now_epoch=now) == 8

    def test_infinite_counts_are_clamped(self):
        assert days(active_days=math.inf) == days(active_days=0)
        assert days(runs=math.inf) == 0


class TestActiveWeeks:

    def weeks(self, **overrides):
        params = dict(
            runs=6,
            active_weeks=3,
            first_run_at_ms=START_MS,
            after_epoch=None,
            target_epoch=TARGET,
            now_epoch=epoch('2025-01-29T00:00:00Z'),
        )
        params.update(overrides)
        return project_runs_active_weeks(**params)

    def test_weekly_density_projection(self):
        # 3 de 4 semanas activas, 49 semanas hasta el objetivo, 2 carreras/semana
        assert self.weeks() == 74

    def test_no_start_returns_runs(self):
        assert self.weeks(first_run_at_ms=math.inf) == 6

    def test_target_before_start(self):
        assert self.weeks(target_epoch=START_MS // 1000 - 1) == 6

    def test_never_below_runs(self):
        now = epoch('2025-03-12T00:00:00Z')
        assert self.weeks(runs=20, active_weeks=2, now_epoch=now, target_epoch=now + 60) == 20

    def test_zero_runs(self):
        assert self.weeks(runs=0) == 0

    def test_same_week_uses_one_elapsed_week(self):
        # 1 semana transcurrida, 49 hasta el objetivo, 2 carreras/semana
        result = self.weeks(runs=2, active_weeks=1, now_epoch=START_MS // 1000 + 3600)
        assert result == 98

    @pytest.mark.parametrize('now', [float('nan'), math.inf])
    def test_non_finite_now_returns_runs(self, now):
        assert self.weeks(now_epoch=now) == 6

    def test_infinite_counts_are_clamped(self):
        assert self.weeks(active_weeks=math.inf) == self.weeks(active_weeks=0)
        assert self.weeks(runs=math.inf) == 0


class TestHelpers:

    @pytest.mark.parametrize('gap, expected', [
        (None, 1.0),
        (0, 1.0),
        (7, 0.5),
        (14, 1 / 3),
        (3.9, 1 / (1 + 3 / 7)),
        (21, 0.3),
        (1000, 0.3),
        (-4, 1.0),
        (math.inf, 0.3),
    ])
    def test_consistency_factor(self, gap, expected):
        assert consistency_factor(gap) == pytest.approx(expected)

    def test_resolve_start_epoch(self):
        assert resolve_start_epoch(START_MS, None) == START_MS // 1000
        assert resolve_start_epoch(START_MS, 123) == 123
        assert resolve_start_epoch(math.inf, None) is None
        assert resolve_start_epoch(0, None) is None
        assert resolve_start_epoch(1500.9, None) == 1
