"""
TabSpider: breadth-first site crawling over a bounded pool of headless browser tabs.

TabSpider drives Chromium through a pluggable browser adapter, lends tabs
from a capacity-limited pool and walks a site level by level under depth,
page-count, domain and pattern limits.
"""

__version__ = "0.1.0"

from .core.exceptions import (
    TabSpiderError,
    PoolExhaustedError,
    PoolClosedError,
    FetchFailedError,
    InvalidUrlError,
    RunAbortedError,
)
from .core.loader import CrawlOptions, SpiderConfig, load_config
from .core.tab_pool import TabPool
from .core.page_renderer import PageRenderer
from .skills.site_crawler import SiteCrawler, CrawlResult

__all__ = [
    "TabPool",
    "PageRenderer",
    "SiteCrawler",
    "CrawlResult",
    "CrawlOptions",
    "SpiderConfig",
    "load_config",
    "TabSpiderError",
    "PoolExhaustedError",
    "PoolClosedError",
    "FetchFailedError",
    "InvalidUrlError",
    "RunAbortedError",
    "__version__",
]
