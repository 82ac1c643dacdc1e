"""时钟与时区提供者

引擎内所有 "当前时间" 都通过注入的 Clock 获取，测试可用 FrozenClock 驱动。
"""

from datetime import UTC, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ValidationError


class Clock(Protocol):
    """时钟接口"""

    def now(self) -> datetime:
        """返回带 UTC 时区的当前时间"""
        ...


class SystemClock:
    """系统时钟"""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """可手动推进的时钟，用于测试和按需 tick"""

    def __init__(self, at: datetime) -> None:
        self._now = ensure_utc(at)

    def now(self) -> datetime:
        return self._now

    def set(self, at: datetime) -> None:
        self._now = ensure_utc(at)

    def advance(self, delta: timedelta) -> None:
        self._now = self._now + delta


def ensure_utc(value: datetime) -> datetime:
    """将 datetime 规范化为 UTC；naive 值视为 UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def get_zone(name: str) -> ZoneInfo:
    """解析 IANA 时区名

    Raises:
        ValidationError: 时区名无法解析
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise ValidationError(f"Invalid timezone: {name}") from exc
