"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、默认时区、排序键间隔、调度器与日志配置等可配置项。
"""

import logging
import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("HIVE_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "HIVE_DB_PATH",
        str(_get_base_dir() / "sqlite" / "hive.db"),
    )


def get_default_timezone() -> str:
    """获取周期模板的默认 IANA 时区"""
    return os.environ.get("HIVE_DEFAULT_TIMEZONE", "America/Chicago")


# 同一状态桶内相邻排序键的间隔
SORT_KEY_GAP: int = 65536

# cron 搜索上限（分钟数，约一年）
CRON_SEARCH_LIMIT_MINUTES: int = 366 * 24 * 60

# 任务事件查询默认条数
TASK_EVENTS_DEFAULT_LIMIT: int = 50


class SchedulerConfig(BaseModel):
    """周期调度器配置 -- 从环境变量加载

    环境变量:
        HIVE_SCHEDULER_TICK_INTERVAL_S: tick 间隔（秒，默认 60）
        HIVE_SCHEDULER_ENABLED: 是否启动调度循环（true/false，默认 true）
    """

    tick_interval_s: float = Field(
        default=60.0,
        gt=0,
        description="两次 tick 之间的间隔（秒）",
    )
    enabled: bool = Field(default=True, description="是否启动调度循环")


def load_scheduler_config() -> SchedulerConfig:
    """从环境变量加载调度器配置

    非法取值记录 warning 并使用默认值，不阻塞启动。
    """
    kwargs: dict = {}

    if val := os.environ.get("HIVE_SCHEDULER_TICK_INTERVAL_S"):
        try:
            interval = float(val)
            if interval <= 0:
                raise ValueError(val)
            kwargs["tick_interval_s"] = interval
        except ValueError:
            log.warning(
                "invalid_scheduler_config",
                env_var="HIVE_SCHEDULER_TICK_INTERVAL_S",
                value=val,
                fallback=60.0,
            )

    if val := os.environ.get("HIVE_SCHEDULER_ENABLED"):
        kwargs["enabled"] = val.strip().lower() not in ("0", "false", "no", "off")

    return SchedulerConfig(**kwargs)


LOG_FORMATS = ("dev", "json")


class LogConfig(BaseModel):
    """日志配置 -- 从环境变量加载

    环境变量:
        HIVE_LOG_FORMAT: dev（默认，可读输出）或 json
        HIVE_LOG_LEVEL: 标准库级别名（默认 INFO）
        HIVE_LOG_SQL: 为 true 时保留 aiosqlite 的 DEBUG 日志
    """

    format: str = Field(default="dev", description="渲染模式")
    level: str = Field(default="INFO", description="根 logger 级别")
    sql_debug: bool = Field(default=False, description="是否输出 aiosqlite 调试日志")


def load_log_config() -> LogConfig:
    """从环境变量加载日志配置

    未知的格式或级别回退到默认值。此时 logging 尚未配置，不写日志。
    """
    kwargs: dict = {}

    if (val := os.environ.get("HIVE_LOG_FORMAT", "").strip().lower()) in LOG_FORMATS:
        kwargs["format"] = val

    level = os.environ.get("HIVE_LOG_LEVEL", "").strip().upper()
    if level and isinstance(logging.getLevelName(level), int):
        kwargs["level"] = level

    if val := os.environ.get("HIVE_LOG_SQL"):
        kwargs["sql_debug"] = val.strip().lower() in ("1", "true", "yes", "on")

    return LogConfig(**kwargs)
