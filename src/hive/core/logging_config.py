"""structlog 配置模块

所有日志（structlog 与标准库）经同一条处理器链渲染：
- 合并 contextvars（tick 期间绑定 template_id）
- component：取自 hive.* logger 名的末段，例如 template_service
- dev 模式 pretty print，json 模式结构化 JSON
"""

import logging

import structlog
from structlog.types import EventDict, WrappedLogger

from .config import LogConfig, load_log_config

_PACKAGE_PREFIX = "hive."

# 每条 SQL 都会打 DEBUG 日志的第三方 logger
_NOISY_LOGGERS = ("aiosqlite",)


def add_component(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """根据 logger 名补充 component 字段；非 hive logger 不处理"""
    name = event_dict.get("logger")
    if isinstance(name, str) and name.startswith(_PACKAGE_PREFIX):
        event_dict.setdefault("component", name.rsplit(".", 1)[-1])
    return event_dict


def shared_processors() -> list[structlog.types.Processor]:
    """structlog 与标准库 logging 共用的前置处理器"""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_component,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(config: LogConfig | None = None) -> None:
    """初始化 structlog 配置

    Args:
        config: 日志配置，为 None 时从 HIVE_LOG_* 环境变量加载
    """
    config = config or load_log_config()
    processors = shared_processors()

    if config.format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=processors,
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(config.level)

    if not config.sql_debug:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
