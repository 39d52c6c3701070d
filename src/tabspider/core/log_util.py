import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .log_config import LogConfig


class ConsoleDisplayFilter(logging.Filter):
    """控制台只显示错误和带 echo 标记的记录，其余只进文件"""

    def filter(self, record):
        return record.levelno >= logging.ERROR or getattr(record, 'echo', False)


# ==========================================
# 1. LogFactory: 每个组件一个日志文件
# ==========================================
class LogFactory:
    _log_dir = "./logs"
    _formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )
    _default_level = logging.INFO
    _max_bytes = 10 * 1024 * 1024
    _backup_count = 5

    @classmethod
    def set_log_dir(cls, path: str):
        cls._log_dir = path
        os.makedirs(cls._log_dir, exist_ok=True)

    @classmethod
    def set_level(cls, level: int):
        """设置全局默认日志级别（配置项 log_level / TABSPIDER_LOG_LEVEL）"""
        cls._default_level = level

    @classmethod
    def get_logger(cls, logger_name: str, filename: str, level: int = None) -> logging.Logger:
        os.makedirs(cls._log_dir, exist_ok=True)

        logger = logging.getLogger(logger_name)
        logger.setLevel(level if level is not None else cls._default_level)
        logger.propagate = False

        if logger.handlers:
            return logger

        file_handler = RotatingFileHandler(
            os.path.join(cls._log_dir, filename),
            maxBytes=cls._max_bytes, backupCount=cls._backup_count, encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(cls._formatter)
        logger.addHandler(file_handler)

        # INFO 以上进入控制台 handler，再由过滤器挑出 echo 和错误
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.addFilter(ConsoleDisplayFilter())
        console_handler.setFormatter(cls._formatter)
        logger.addHandler(console_handler)

        return logger


class ComponentLogger(logging.LoggerAdapter):
    """
    给每条记录加上组件前缀（例如 "[crawler https://example.com/]"），
    并按 LogConfig 的开关和级别过滤。
    """

    def __init__(self, logger: logging.Logger, owner: 'AutoLoggerMixin'):
        super().__init__(logger, {})
        self.owner = owner

    def isEnabledFor(self, level: int) -> bool:
        config = self.owner._log_config
        if config is not None and (not config.enabled or level < config.level):
            return False
        return super().isEnabledFor(level)

    def process(self, msg, kwargs):
        # 不覆盖调用者自己传的 extra（echo 标记靠它）
        prefix = self.owner._get_log_prefix()
        return (f"{prefix} {msg}" if prefix else msg), kwargs


# ==========================================
# 2. AutoLoggerMixin: 组件日志的入口
# ==========================================
class AutoLoggerMixin:
    """
    日志 Mixin。

    - 设置了 _parent_logger 时和父组件共用一个 logger（PageRenderer 把收到的 parent_logger 也交给 TabPool）
    - 否则写 _custom_log_filename，未设置时写 类名.log
    - LogConfig.prefix 里可以引用 _get_log_context() 返回的变量
    """

    _custom_log_filename: Optional[str] = None

    _parent_logger: Optional[logging.Logger] = None
    _log_config: Optional['LogConfig'] = None

    def attach_logger(self, parent_logger: Optional[logging.Logger] = None,
                      log_config: Optional['LogConfig'] = None):
        """挂载父 logger 和日志配置（两者都可选）"""
        if parent_logger is not None:
            self._parent_logger = parent_logger
        if log_config is not None:
            self._log_config = log_config

    @property
    def logger(self) -> ComponentLogger:
        # 懒加载：第一次访问时才创建文件
        if not hasattr(self, '_internal_logger'):
            self._internal_logger = ComponentLogger(self._resolve_logger(), self)
        return self._internal_logger

    def _resolve_logger(self) -> logging.Logger:
        if self._parent_logger:
            return self._parent_logger

        filename = self._custom_log_filename or f"{self.__class__.__name__}.log"
        level = self._log_config.level if self._log_config is not None else None
        return LogFactory.get_logger(f"{self.__class__.__name__}_{filename}", filename, level=level)

    def _get_log_prefix(self) -> str:
        template = self._log_config.prefix if self._log_config is not None else ""
        if not template:
            return ""
        try:
            return template.format(**self._get_log_context())
        except KeyError:
            # 模板里引用了上下文中没有的变量，原样输出
            return template

    def _get_log_context(self) -> dict:
        """日志前缀可用的变量（子类覆盖）"""
        return {}

    def echo(self, msg: str, *args):
        """既写日志文件，也输出到控制台"""
        self.logger.info(msg, *args, extra={'echo': True})
