"""日志初始化。"""

import logging

from roadpress_admin.core.config import get_settings

LOGGER_NAME = "roadpress_admin"


def setup_logging() -> None:
    """初始化日志输出格式与级别。"""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def get_logger(name: str) -> logging.Logger:
    """返回挂在包根日志器下的子日志器。"""
    if name.startswith(LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
