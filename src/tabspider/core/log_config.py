"""
日志配置类

用于统一管理标签页池、渲染器、爬虫各组件的日志行为
"""
import logging
from dataclasses import dataclass
from typing import Optional


@dataclass
class LogConfig:
    """日志配置类

    Attributes:
        enabled: 是否启用日志（默认 True）
        level: 日志级别（默认 DEBUG）
        prefix: 日志前缀模板，支持 {component} {base_url} 等变量替换
    """
    enabled: bool = True
    level: int = logging.DEBUG
    prefix: str = ""

    @classmethod
    def from_dict(cls, config_dict: Optional[dict] = None) -> 'LogConfig':
        """从字典创建 LogConfig，None 返回默认配置"""
        if config_dict is None:
            return cls()

        return cls(
            enabled=config_dict.get("enabled", True),
            level=cls.parse_level(config_dict.get("level", "DEBUG")),
            prefix=config_dict.get("prefix", "")
        )

    @staticmethod
    def parse_level(level) -> int:
        """解析日志级别，接受 "INFO" 这样的字符串或 logging 整数值"""
        if isinstance(level, int):
            return level
        return getattr(logging, str(level).upper(), logging.DEBUG)

