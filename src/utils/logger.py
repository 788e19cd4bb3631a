"""
精简的日志系统
只保留核心功能：
- 分级日志记录
- 控制台和文件输出
- 日志轮转
- 调试模式切换

默认值（调试开关、日志目录、是否写文件）来自 db.config。
"""

import sys
import copy
import logging
from pathlib import Path
from typing import Optional, Dict
from logging.handlers import RotatingFileHandler


DEFAULT_LOGGER_NAME = "ChainState"


class ColoredFormatter(logging.Formatter):
    """彩色控制台输出"""

    COLORS = {
        'DEBUG': '\033[36m',      # 青色
        'INFO': '\033[32m',       # 绿色
        'WARNING': '\033[33m',    # 黄色
        'ERROR': '\033[31m',      # 红色
        'CRITICAL': '\033[35m',   # 紫色
        'RESET': '\033[0m',       # 重置
    }

    def __init__(self, *args, for_console: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self._for_console = for_console

    def format(self, record):
        if not (self._for_console and sys.stdout.isatty()):
            return super().format(record)

        # 复制 record，避免影响其他 handler
        colored_record = copy.copy(record)
        levelname = colored_record.levelname
        if levelname in self.COLORS:
            color = self.COLORS[levelname]
            colored_record.levelname = f"{color}{levelname}{self.COLORS['RESET']}"
            colored_record.msg = f"{color}{colored_record.msg}{self.COLORS['RESET']}"
        return super().format(colored_record)


class Logger:
    """简单的日志记录器"""

    def __init__(
        self,
        name: str = DEFAULT_LOGGER_NAME,
        log_dir: Optional[str] = None,
        debug: bool = False,
        console: bool = True,
        file: Optional[bool] = None,
    ):
        """
        初始化日志记录器

        Args:
            name: 日志记录器名称
            log_dir: 日志文件目录，默认取 config.LOG_DIR
            debug: 是否开启调试模式
            console: 是否输出到控制台
            file: 是否输出到文件，默认取 config.LOG_TO_FILE
        """
        from db.config import config

        self.name = name
        self.debug_mode = debug
        if file is None:
            file = config.LOG_TO_FILE

        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if self.debug_mode else logging.INFO)
        self.logger.handlers.clear()
        self.logger.propagate = False

        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(ColoredFormatter(
                '%(asctime)s [%(levelname)s] %(filename)s:%(funcName)s:%(lineno)d - %(message)s',
                datefmt='%H:%M:%S',
                for_console=True,
            ))
            self.logger.addHandler(console_handler)

        if file:
            self.log_dir = Path(log_dir or config.LOG_DIR)
            self.log_dir.mkdir(parents=True, exist_ok=True)

            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(funcName)s:%(lineno)d - %(message)s'
            )

            # 常规日志
            file_handler = RotatingFileHandler(
                self.log_dir / f"{name.lower()}.log",
                maxBytes=10*1024*1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

            # 错误日志（单独文件）
            error_handler = RotatingFileHandler(
                self.log_dir / f"{name.lower()}_error.log",
                maxBytes=5*1024*1024,  # 5MB
                backupCount=3,
                encoding='utf-8'
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(file_formatter)
            self.logger.addHandler(error_handler)

    def set_debug(self, enabled: bool):
        """切换调试模式"""
        self.debug_mode = enabled
        self.logger.setLevel(logging.DEBUG if enabled else logging.INFO)

    def debug(self, msg: str, *args, **kwargs):
        kwargs['stacklevel'] = kwargs.get('stacklevel', 2)
        self.logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        kwargs['stacklevel'] = kwargs.get('stacklevel', 2)
        self.logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        kwargs['stacklevel'] = kwargs.get('stacklevel', 2)
        self.logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        kwargs['stacklevel'] = kwargs.get('stacklevel', 2)
        self.logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        """记录异常信息（自动包含堆栈）"""
        kwargs['stacklevel'] = kwargs.get('stacklevel', 2)
        self.logger.exception(msg, *args, **kwargs)


# logger 缓存
_logger_cache: Dict[str, Logger] = {}
_global_debug = False  # 全局debug开关


def get_logger(name: Optional[str] = None, **kwargs) -> Logger:
    """
    获取日志记录器（带缓存）

    Args:
        name: 日志记录器名称，None 则返回默认 logger
        **kwargs: Logger 构造函数参数

    Returns:
        Logger实例
    """
    from db.config import config

    name = name or DEFAULT_LOGGER_NAME
    if name not in _logger_cache:
        debug = _global_debug or config.DEBUG
        _logger_cache[name] = Logger(name=name, debug=debug, **kwargs)
    return _logger_cache[name]


def set_global_debug(enabled: bool):
    """
    设置全局debug模式

    Args:
        enabled: 是否启用debug模式
    """
    global _global_debug
    _global_debug = enabled

    for logger in _logger_cache.values():
        logger.set_debug(enabled)

    get_logger().info(f"Global debug mode: {'ENABLED' if enabled else 'DISABLED'}")
