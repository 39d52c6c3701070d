"""
爬虫的公共辅助方法

URL 规范化，以及决定一个候选链接是否进入下一批次的规则。
"""

import re
from typing import Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

_MULTI_SLASH = re.compile(r"/{2,}")


def normalize_url(url: str) -> str:
    """
    规范化 URL，用于去重和比较

    - 去掉 fragment (#...)
    - 合并 path 中重复的 /
    - scheme 与 host 转小写，http(s) 的空 path 补成 /
    - 不是绝对 URL 或解析失败时原样返回，从不抛异常
    """
    try:
        parsed = urlsplit(url)
        if not parsed.scheme or not parsed.netloc:
            return url
        scheme = parsed.scheme.lower()
        path = _MULTI_SLASH.sub("/", parsed.path)
        if not path and scheme in ("http", "https"):
            path = "/"
        return urlunsplit((scheme, parsed.netloc.lower(), path, parsed.query, ""))
    except (ValueError, TypeError, AttributeError):
        return url


def hostname_of(url: str) -> Optional[str]:
    """返回小写 hostname；不是绝对 URL 或解析失败返回 None"""
    try:
        parsed = urlsplit(url)
        if not parsed.scheme:
            return None
        return parsed.hostname
    except (ValueError, TypeError, AttributeError):
        return None


def is_http_url(url: str) -> bool:
    try:
        parsed = urlsplit(url)
    except (ValueError, TypeError, AttributeError):
        return False
    return parsed.scheme.lower() in ("http", "https") and bool(parsed.hostname)


def urlsplit_ok(url: str) -> bool:
    """能否作为绝对 URL 解析（有 scheme）"""
    try:
        return bool(urlsplit(url).scheme)
    except (ValueError, TypeError, AttributeError):
        return False


def contains_any(url: str, patterns: Iterable[str]) -> bool:
    """纯子串匹配，不做正则或通配符解释"""
    return any(pattern in url for pattern in patterns)


class CrawlerHelperMixin:
    """
    爬虫的公共辅助方法 Mixin

    依赖：
    - self.logger - 日志记录
    """

    def _should_follow(self, url: str, ctx, base_host: Optional[str], options) -> bool:
        """
        统一的候选 URL 检查函数

        检查项：
        1. 是否已访问（visited）
        2. 能否作为绝对 URL 解析（失败按不跟随处理）
        3. 同域限制
        4. 排除子串
        5. 包含子串（列表非空时）

        Args:
            url: 已规范化的候选 URL
            ctx: CrawlRunState
            base_host: 起始 URL 的 hostname
            options: CrawlOptions

        Returns:
            bool: True 表示加入下一批次
        """
        if ctx.has_visited(url):
            return False

        if not urlsplit_ok(url):
            self.logger.debug(f"Skip unparsable link: {url!r}")
            return False

        host = hostname_of(url)

        if options.same_domain and host != base_host:
            return False

        if contains_any(url, options.exclude_patterns):
            return False

        if options.include_patterns and not contains_any(url, options.include_patterns):
            return False

        return True
