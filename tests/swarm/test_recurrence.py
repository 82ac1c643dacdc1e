"""间隔型周期计算测试 -- 夏令时、月末截断、周次奇偶"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from hive.core.exceptions import ValidationError
from hive.core.models import EveryUnit, ScheduleSpec, WeekParity
from hive.swarm.recurrence import add_months, compute_next_run, resolve_local

TZ = "America/Chicago"
CHICAGO = ZoneInfo(TZ)


def _every(interval: int, unit: EveryUnit, parity: WeekParity = WeekParity.ANY) -> ScheduleSpec:
    return ScheduleSpec(every_interval=interval, every_unit=unit, week_parity=parity)


def _is_valid_local(instant: datetime, zone: ZoneInfo) -> bool:
    """本地墙钟时间存在且能唯一还原为同一时刻"""
    local = instant.astimezone(zone).replace(tzinfo=None)
    return resolve_local(local, zone) == instant or local.replace(
        tzinfo=zone, fold=1
    ).astimezone(UTC) == instant


class TestDaylightSaving:
    def test_daily_across_spring_forward(self):
        after = datetime(2026, 3, 7, 8, 30, tzinfo=UTC)  # 02:30 CST
        result = compute_next_run(_every(1, EveryUnit.DAY), TZ, after)

        local = result.astimezone(CHICAGO)
        assert (local.year, local.month, local.day) == (2026, 3, 8)
        # 02:30 不存在，顺延到 03:30 CDT
        assert (local.hour, local.minute) == (3, 30)
        assert result == datetime(2026, 3, 8, 8, 30, tzinfo=UTC)
        assert _is_valid_local(result, CHICAGO)

    def test_daily_across_fall_back_is_earlier_instant(self):
        after = datetime(2026, 10, 31, 6, 30, tzinfo=UTC)  # 01:30 CDT
        result = compute_next_run(_every(1, EveryUnit.DAY), TZ, after)

        assert result == datetime(2026, 11, 1, 6, 30, tzinfo=UTC)
        local = result.astimezone(CHICAGO)
        assert (local.hour, local.minute) == (1, 30)
        assert local.utcoffset() == timedelta(hours=-5)

    def test_daily_keeps_wall_clock(self):
        after = datetime(2026, 3, 7, 15, 0, tzinfo=UTC)  # 09:00 CST
        result = compute_next_run(_every(1, EveryUnit.DAY), TZ, after)
        # 09:00 CDT
        assert result == datetime(2026, 3, 8, 14, 0, tzinfo=UTC)

    def test_weekly_keeps_wall_clock(self):
        after = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)  # 周一 09:00 CST
        result = compute_next_run(_every(1, EveryUnit.WEEK), TZ, after)
        assert result == datetime(2026, 3, 9, 14, 0, tzinfo=UTC)

    def test_hourly_is_absolute_elapsed_time(self):
        after = datetime(2026, 3, 8, 7, 30, tzinfo=UTC)  # 01:30 CST
        result = compute_next_run(_every(1, EveryUnit.HOUR), TZ, after)
        assert result == after + timedelta(hours=1)
        assert result.astimezone(CHICAGO).hour == 3

    def test_minutes(self):
        after = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)
        result = compute_next_run(_every(45, EveryUnit.MINUTE), TZ, after)
        assert result == after + timedelta(minutes=45)


class TestMonthArithmetic:
    def test_month_end_clamp_non_leap(self):
        after = datetime(2026, 1, 31, 15, 0, tzinfo=UTC)  # 09:00 CST
        result = compute_next_run(_every(1, EveryUnit.MONTH), TZ, after)
        local = result.astimezone(CHICAGO)
        assert (local.year, local.month, local.day) == (2026, 2, 28)
        assert (local.hour, local.minute) == (9, 0)

    def test_month_end_clamp_leap(self):
        after = datetime(2028, 1, 31, 15, 0, tzinfo=UTC)
        local = compute_next_run(_every(1, EveryUnit.MONTH), TZ, after).astimezone(CHICAGO)
        assert (local.month, local.day) == (2, 29)

    @pytest.mark.parametrize(
        "start,months,expected",
        [
            (datetime(2026, 3, 31), 1, datetime(2026, 4, 30)),
            (datetime(2026, 12, 15), 1, datetime(2027, 1, 15)),
            (datetime(2026, 1, 31), 13, datetime(2027, 2, 28)),
            (datetime(2026, 5, 10, 8, 45), 3, datetime(2026, 8, 10, 8, 45)),
        ],
    )
    def test_add_months(self, start: datetime, months: int, expected: datetime):
        assert add_months(start, months) == expected


class TestWeekParity:
    def test_matching_parity_unchanged(self):
        after = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)
        result = compute_next_run(_every(1, EveryUnit.WEEK, WeekParity.ODD), TZ, after)
        local = result.astimezone(CHICAGO)
        assert local.isocalendar().week % 2 == 1
        assert (local.month, local.day) == (3, 9)

    def test_wrong_parity_adds_one_week(self):
        after = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)
        result = compute_next_run(_every(1, EveryUnit.WEEK, WeekParity.EVEN), TZ, after)
        local = result.astimezone(CHICAGO)
        assert local.isocalendar().week % 2 == 0
        assert (local.month, local.day) == (3, 16)
        assert (local.hour, local.minute) == (9, 0)

    def test_daily_with_parity(self):
        # 2026-03-08 周日属于 ISO 第 10 周（偶数）
        after = datetime(2026, 3, 7, 15, 0, tzinfo=UTC)
        result = compute_next_run(_every(1, EveryUnit.DAY, WeekParity.ODD), TZ, after)
        local = result.astimezone(CHICAGO)
        assert (local.month, local.day) == (3, 15)
        assert local.isocalendar().week % 2 == 1


class TestInvalidSchedules:
    def test_unknown_unit(self):
        spec = ScheduleSpec.model_construct(
            cron_expr=None, every_interval=1, every_unit="fortnight", week_parity="any"
        )
        with pytest.raises(ValidationError):
            compute_next_run(spec, TZ, datetime(2026, 1, 1, tzinfo=UTC))

    def test_missing_interval(self):
        spec = ScheduleSpec.model_construct(
            cron_expr=None, every_interval=None, every_unit="day", week_parity="any"
        )
        with pytest.raises(ValidationError):
            compute_next_run(spec, TZ, datetime(2026, 1, 1, tzinfo=UTC))

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            compute_next_run(_every(1, EveryUnit.DAY), "Atlantis/Capital", datetime(2026, 1, 1, tzinfo=UTC))

    def test_cron_spec_delegates(self):
        spec = ScheduleSpec(cron_expr="0 9 * * *")
        result = compute_next_run(spec, "UTC", datetime(2026, 1, 1, tzinfo=UTC))
        assert result == datetime(2026, 1, 1, 9, 0, tzinfo=UTC)
