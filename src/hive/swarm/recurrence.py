"""间隔型周期模板的下一次运行时间（时区 / 夏令时安全）

- minute / hour 按绝对经过时间相加
- day / week / month 在模板时区的本地日历时间上相加，再解析回 UTC：
  - 本地时间落在夏令时间隙内：按间隙前的偏移解释，结果顺延到间隙之后
  - 本地时间重复（回拨）：取较早的时刻
  - 月份相加时日期截断到目标月最后一天
- 设置了周次奇偶且 ISO 周次不符时，再加一周
"""

import calendar
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from hive.core.clock import ensure_utc, get_zone
from hive.core.exceptions import ValidationError
from hive.core.models import EveryUnit, ScheduleSpec, WeekParity

from .cron import next_cron_run, parse_cron


def resolve_local(local: datetime, zone: ZoneInfo) -> datetime:
    """本地墙钟时间（naive）-> UTC

    fold=0：重复时间取较早时刻；间隙内时间按间隙前偏移换算，即顺延一个间隙长度。
    """
    return local.replace(tzinfo=zone, fold=0).astimezone(UTC)


def add_months(local: datetime, months: int) -> datetime:
    """本地时间加月，日期截断到目标月最后一天"""
    years, month_index = divmod(local.month - 1 + months, 12)
    year = local.year + years
    month = month_index + 1
    day = min(local.day, calendar.monthrange(year, month)[1])
    return local.replace(year=year, month=month, day=day)


def add_interval(
    after: datetime,
    interval: int,
    unit: EveryUnit,
    zone: ZoneInfo,
) -> datetime:
    """after + interval * unit，返回 UTC"""
    reference = ensure_utc(after)
    if unit == EveryUnit.MINUTE:
        return reference + timedelta(minutes=interval)
    if unit == EveryUnit.HOUR:
        return reference + timedelta(hours=interval)

    local = reference.astimezone(zone).replace(tzinfo=None)
    if unit == EveryUnit.DAY:
        local += timedelta(days=interval)
    elif unit == EveryUnit.WEEK:
        local += timedelta(weeks=interval)
    else:
        local = add_months(local, interval)
    return resolve_local(local, zone)


def apply_week_parity(instant: datetime, parity: WeekParity, zone: ZoneInfo) -> datetime:
    """ISO 周次奇偶不符时顺延一周（按本地日历）"""
    if parity == WeekParity.ANY:
        return instant
    local = instant.astimezone(zone)
    is_odd = local.isocalendar().week % 2 == 1
    if is_odd == (parity == WeekParity.ODD):
        return instant
    return resolve_local(local.replace(tzinfo=None) + timedelta(weeks=1), zone)


def validate_schedule(schedule: ScheduleSpec, timezone: str) -> None:
    """校验调度规格与时区

    Raises:
        ValidationError: cron 非法、间隔缺失或非法、单位未知、时区未知
    """
    get_zone(timezone)
    has_cron = schedule.cron_expr is not None
    has_interval = schedule.every_interval is not None or schedule.every_unit is not None
    if has_cron == has_interval:
        raise ValidationError("exactly one of cron_expr or every_interval/every_unit is required")
    if has_cron:
        parse_cron(schedule.cron_expr)
        return
    _interval_parts(schedule)


def _interval_parts(schedule: ScheduleSpec) -> tuple[int, EveryUnit, WeekParity]:
    interval = schedule.every_interval
    if not isinstance(interval, int) or interval < 1:
        raise ValidationError(f"every_interval must be a positive integer: {interval!r}")
    try:
        unit = EveryUnit(schedule.every_unit)
        parity = WeekParity(schedule.week_parity or WeekParity.ANY)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return interval, unit, parity


def compute_next_run(
    schedule: ScheduleSpec,
    timezone: str,
    after: datetime,
) -> datetime:
    """按调度规格计算 after 之后的下一次运行时间（UTC）

    Raises:
        ValidationError: 调度规格或时区非法
    """
    zone = get_zone(timezone)
    if schedule.cron_expr is not None:
        return next_cron_run(schedule.cron_expr, after, zone)

    interval, unit, parity = _interval_parts(schedule)
    candidate = add_interval(after, interval, unit, zone)
    return apply_week_parity(candidate, parity, zone)
