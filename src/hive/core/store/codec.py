"""数据库值编解码

时间统一存为 UTC ISO-8601（固定微秒精度），保证 TEXT 列上的字典序即时间序。
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from ..clock import ensure_utc


def to_db_ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def from_db_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def to_db_value(value: Any) -> Any:
    """将模型字段值转换为可写入 SQLite 的值"""
    if isinstance(value, datetime):
        return to_db_ts(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value
