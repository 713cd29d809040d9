# app/core/logging.py
import logging
import sys

from loguru import logger

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level}</level> | {name} | {message}"


class InterceptHandler(logging.Handler):
    """把 stdlib logging（各 service 的 logging.getLogger）轉給 loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO"):
    logger.remove()
    logger.add(sys.stdout, level=level,
               backtrace=True, diagnose=False,
               format=LOG_FORMAT)
    logging.basicConfig(handlers=[InterceptHandler()], level=level, force=True)
    return logger
