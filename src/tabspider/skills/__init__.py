"""
Skills Module

站点爬取相关的逻辑
"""

from .crawler_helpers import CrawlerHelperMixin, normalize_url
from .site_crawler import SiteCrawler, CrawlResult

__all__ = [
    "CrawlerHelperMixin",
    "normalize_url",
    "SiteCrawler",
    "CrawlResult",
]
