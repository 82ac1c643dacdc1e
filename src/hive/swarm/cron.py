"""5 字段 cron 解析与下一次运行时间计算

字段：minute hour day-of-month month day-of-week（0 = 周日，7 也视为周日）。
支持 *、逗号列表、a-b、a-b/n、*/n、n/s（从 n 到上限）。
五个字段全部匹配（AND）才算命中。

下一次运行时间在模板时区的本地时间上逐分钟搜索：
- 夏令时跳过的本地时间不存在，永不命中
- 回拨重复的本地时间取较早的时刻，除非该时刻不晚于参考时间
- 约一年内无命中时退化为 参考时间 + 24h
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import structlog

from hive.core.clock import ensure_utc, get_zone
from hive.core.config import CRON_SEARCH_LIMIT_MINUTES
from hive.core.exceptions import ValidationError

log = structlog.get_logger()

_FIELD_BOUNDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day-of-month", 1, 31),
    ("month", 1, 12),
    ("day-of-week", 0, 7),
)


@dataclass(frozen=True)
class CronSchedule:
    """解析后的 cron 表达式"""

    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]

    def matches_date(self, local: datetime) -> bool:
        # Python weekday(): 周一 = 0；cron: 周日 = 0
        cron_weekday = (local.weekday() + 1) % 7
        return (
            local.month in self.months
            and local.day in self.days
            and cron_weekday in self.weekdays
        )

    def matches(self, local: datetime) -> bool:
        return (
            self.matches_date(local)
            and local.hour in self.hours
            and local.minute in self.minutes
        )


def parse_cron(expr: str) -> CronSchedule:
    """解析 cron 表达式

    Raises:
        ValidationError: 字段数不为 5、非数字、越界、反向区间或步长为 0
    """
    if not isinstance(expr, str):
        raise ValidationError(f"Invalid cron: {expr!r}")
    parts = expr.split()
    if len(parts) != 5:
        raise ValidationError(f"Invalid cron: {expr!r} (expected 5 fields, got {len(parts)})")

    values = [
        _parse_field(part, name, low, high)
        for part, (name, low, high) in zip(parts, _FIELD_BOUNDS, strict=True)
    ]
    weekdays = frozenset(0 if day == 7 else day for day in values[4])
    return CronSchedule(
        minutes=values[0],
        hours=values[1],
        days=values[2],
        months=values[3],
        weekdays=weekdays,
    )


def _parse_field(field: str, name: str, low: int, high: int) -> frozenset[int]:
    result: set[int] = set()
    for part in field.split(","):
        if not part:
            raise ValidationError(f"Invalid cron {name} field: {field!r}")

        step = 1
        has_step = "/" in part
        if has_step:
            part, step_text = part.split("/", 1)
            step = _to_int(step_text, name)
            if step <= 0:
                raise ValidationError(f"Invalid cron {name} step: {step_text!r}")

        if part == "*":
            start, end = low, high
        elif "-" in part:
            start_text, end_text = part.split("-", 1)
            start, end = _to_int(start_text, name), _to_int(end_text, name)
        else:
            start = _to_int(part, name)
            # n/s 表示从 n 到上限
            end = high if has_step else start

        if start < low or end > high:
            raise ValidationError(f"Cron {name} value out of range {low}-{high}: {part!r}")
        if start > end:
            raise ValidationError(f"Invalid cron {name} range: {part!r}")
        result.update(range(start, end + 1, step))
    return frozenset(result)


def _to_int(text: str, name: str) -> int:
    if not (text.isascii() and text.isdigit()):
        raise ValidationError(f"Invalid cron {name} value: {text!r}")
    return int(text)


def next_cron_run(
    cron: str | CronSchedule,
    after: datetime,
    timezone: str | ZoneInfo,
) -> datetime:
    """计算 after 之后的下一次运行时间（UTC）

    Args:
        cron: cron 表达式或已解析的 CronSchedule
        after: 参考时间
        timezone: 模板时区（IANA 名或 ZoneInfo）

    Raises:
        ValidationError: 表达式或时区非法
    """
    schedule = parse_cron(cron) if isinstance(cron, str) else cron
    zone = get_zone(timezone) if isinstance(timezone, str) else timezone
    reference = ensure_utc(after)

    local = reference.astimezone(zone).replace(tzinfo=None, second=0, microsecond=0)
    local += timedelta(minutes=1)

    scanned = 0
    while scanned < CRON_SEARCH_LIMIT_MINUTES:
        if not schedule.matches_date(local):
            next_day = (local + timedelta(days=1)).replace(hour=0, minute=0)
            scanned += int((next_day - local).total_seconds() // 60)
            local = next_day
            continue
        if local.hour not in schedule.hours:
            next_hour = local.replace(minute=0) + timedelta(hours=1)
            scanned += int((next_hour - local).total_seconds() // 60)
            local = next_hour
            continue
        if local.minute in schedule.minutes:
            instant = _resolve_match(local, zone, reference)
            if instant is not None:
                return instant
        local += timedelta(minutes=1)
        scanned += 1

    log.warning(
        "cron_search_exhausted",
        after=reference.isoformat(),
        timezone=str(zone),
        fallback_hours=24,
    )
    return reference + timedelta(hours=24)


def _resolve_match(local: datetime, zone: ZoneInfo, reference: datetime) -> datetime | None:
    """命中的本地时间转为 UTC；不存在的本地时间返回 None"""
    for fold in (0, 1):
        instant = local.replace(tzinfo=zone, fold=fold).astimezone(UTC)
        round_trip = instant.astimezone(zone).replace(tzinfo=None)
        if round_trip != local:
            # 夏令时间隙内的本地时间
            return None
        if instant > reference:
            return instant
    return None
