"""
配置加载

SpiderConfig 汇总标签页池、浏览器和爬取的默认值。
来源优先级（后者覆盖前者）：代码默认值 → YAML 配置文件 → .env / 环境变量 (TABSPIDER_*)。
"""
import os
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

DEFAULT_EXCLUDE_PATTERNS: Tuple[str, ...] = (
    "mailto:",
    "tel:",
    "javascript:",
    "#",
    ".pdf",
    ".doc",
    ".docx",
    ".xls",
    ".xlsx",
    ".zip",
    ".rar",
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

ENV_PREFIX = "TABSPIDER_"

logger = logging.getLogger(__name__)


@dataclass
class CrawlOptions:
    """站点爬取选项

    Attributes:
        max_depth: 最大遍历深度（批次数）
        max_pages: 最多派发的页面数
        same_domain: 是否只跟随与起始 URL 同 hostname 的链接
        exclude_patterns: 子串排除列表，命中任意一个即不跟随
        include_patterns: 子串包含列表，非空时必须命中至少一个
        delay: 批次之间的间隔（毫秒）
    """
    max_depth: int = 3
    max_pages: int = 100
    same_domain: bool = True
    exclude_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    include_patterns: List[str] = field(default_factory=list)
    delay: int = 1000

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]] = None) -> 'CrawlOptions':
        """从字典创建，缺失或为 None 的键使用默认值，未知键报错"""
        if not options:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ValueError(f"Unknown crawl option(s): {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in options.items() if v is not None})


@dataclass
class SpiderConfig:
    """标签页池、浏览器与日志配置"""
    max_tabs: int = 10
    acquire_timeout: float = 30.0
    browser_timeout: float = 30.0
    request_timeout: float = 10.0
    navigation_timeout: float = 30.0
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    viewport: Tuple[int, int] = (1920, 1080)
    profile_path: Optional[str] = None
    idle_max_age: float = 30 * 60
    cleanup_interval: Optional[float] = None
    log_dir: str = "./logs"
    log_level: str = "INFO"
    crawl: CrawlOptions = field(default_factory=CrawlOptions)

    @classmethod
    def from_dict(cls, config_dict: Optional[Dict[str, Any]] = None) -> 'SpiderConfig':
        if not config_dict:
            return cls()

        data = dict(config_dict)
        crawl = CrawlOptions.from_dict(data.pop("crawl", None))

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config key(s): {', '.join(sorted(unknown))}")

        if "viewport" in data and data["viewport"] is not None:
            data["viewport"] = _parse_viewport(data["viewport"])
        return cls(crawl=crawl, **{k: v for k, v in data.items() if v is not None})

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> 'SpiderConfig':
        """用 TABSPIDER_* 环境变量覆盖配置"""
        environ = os.environ if environ is None else environ
        casters = {
            "max_tabs": int,
            "acquire_timeout": float,
            "browser_timeout": float,
            "request_timeout": float,
            "navigation_timeout": float,
            "headless": _parse_bool,
            "user_agent": str,
            "profile_path": str,
            "idle_max_age": float,
            "cleanup_interval": float,
            "log_dir": str,
            "log_level": str,
        }
        for name, cast in casters.items():
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            try:
                setattr(self, name, cast(raw))
            except ValueError as e:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from e
        return self


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    value_lower = str(value).strip().lower()
    if value_lower in ("1", "true", "yes", "on"):
        return True
    if value_lower in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_viewport(value) -> Tuple[int, int]:
    if isinstance(value, dict):
        return int(value["width"]), int(value["height"])
    if isinstance(value, str):
        width, height = value.lower().split("x", 1)
        return int(width), int(height)
    width, height = value
    return int(width), int(height)


def load_config(path: Optional[str] = None, env_file: Optional[str] = None) -> SpiderConfig:
    """
    加载配置

    Args:
        path: YAML 配置文件路径（可选）
        env_file: .env 文件路径（可选，默认当前目录下的 .env，存在且可读时加载）

    Returns:
        SpiderConfig 实例
    """
    env_file = env_file or os.path.join(os.getcwd(), ".env")
    if os.path.exists(env_file) and os.access(env_file, os.R_OK):
        load_dotenv(env_file)

    config_dict: Dict[str, Any] = {}
    if path:
        with open(path, 'r', encoding='utf-8') as f:
            config_dict = yaml.safe_load(f) or {}
        if not isinstance(config_dict, dict):
            raise ValueError(f"Config file must contain a mapping: {path}")
        logger.debug(f"Loaded config file {path}")

    return SpiderConfig.from_dict(config_dict).apply_env()
