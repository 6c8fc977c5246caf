"""
日志配置

- 控制台：彩色输出
- logs/app_YYYY-MM-DD.log：INFO 及以上
- logs/error_YYYY-MM-DD.log：仅 ERROR
- logs/movements_YYYY-MM-DD.log：库存出入流水（不进入 app 日志，避免刷屏）
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

LOG_DIR = Path("logs")
MOVEMENT_LOGGER = "warehouse_erp.movements"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
MOVEMENT_FORMAT = "%(asctime)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 第三方库只保留警告
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "apscheduler")


class ColoredFormatter(logging.Formatter):
    """控制台彩色级别名"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        # 复制一份，颜色码不能带进文件处理器
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def _file_handler(path: Path, level: int, fmt: str) -> logging.FileHandler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, DATE_FORMAT))
    return handler


def setup_logging(log_level: str = "INFO", log_dir: Path = LOG_DIR):
    """
    配置日志系统，应用启动时调用一次

    Args:
        log_level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: 日志文件目录
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    today = datetime.now().strftime("%Y-%m-%d")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console_handler)
    root_logger.addHandler(_file_handler(log_dir / f"app_{today}.log", logging.INFO, LOG_FORMAT))
    root_logger.addHandler(_file_handler(log_dir / f"error_{today}.log", logging.ERROR, LOG_FORMAT))

    movement_logger = logging.getLogger(MOVEMENT_LOGGER)
    movement_logger.handlers.clear()
    movement_logger.setLevel(logging.INFO)
    movement_logger.propagate = False
    movement_logger.addHandler(
        _file_handler(log_dir / f"movements_{today}.log", logging.INFO, MOVEMENT_FORMAT)
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info(f"📋 日志系统初始化完成，目录 {log_dir.resolve()}")


def get_logger(name: str) -> logging.Logger:
    """logger = get_logger(__name__)"""
    return logging.getLogger(name)
