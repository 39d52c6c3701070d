"""
PageRenderer - 通过标签页池抓取页面链接

每次 fetch_links:
  lease 标签页 → navigate → extract_links → 归还（无论成功与否）

PageRenderer 拥有 TabPool；爬虫只和 PageRenderer 打交道，不直接接触标签页池。
"""

import logging
from typing import List, Optional, TYPE_CHECKING

from ..core.browser.browser_adapter import BrowserAdapter, RawAnchor
from ..core.browser.browser_common import LinkData, TabSession
from ..core.exceptions import BrowserDisconnectedError, FetchFailedError, InvalidUrlError
from ..core.loader import SpiderConfig
from ..core.log_util import AutoLoggerMixin
from ..core.tab_pool import TabPool
from ..skills.crawler_helpers import hostname_of, is_http_url

if TYPE_CHECKING:
    from ..core.log_config import LogConfig


def to_link_data(anchors: List[RawAnchor], page_url: str) -> List[LinkData]:
    """
    原始锚点 → LinkData

    没有 href 或没有文本的锚点丢弃；
    is_internal 表示目标 hostname 与页面 hostname 相同，解析失败按站外处理。
    """
    page_host = hostname_of(page_url)
    links = []
    for anchor in anchors:
        href = (anchor.get("href") or "").strip()
        text = (anchor.get("text") or "").strip()
        if not href or not text:
            continue
        target_host = hostname_of(href)
        links.append(LinkData(
            url=href,
            text=text,
            title=anchor.get("title") or None,
            is_internal=target_host is not None and target_host == page_host,
        ))
    return links


class PageRenderer(AutoLoggerMixin):
    """
    页面渲染器

    用法:
        async with PageRenderer(config=config) as renderer:
            links = await renderer.fetch_links("https://example.com/")
    """

    _custom_log_filename = "page_renderer.log"

    def __init__(
        self,
        adapter: Optional[BrowserAdapter] = None,
        config: Optional[SpiderConfig] = None,
        pool: Optional[TabPool] = None,
        parent_logger: Optional[logging.Logger] = None,
        log_config: Optional['LogConfig'] = None,
    ):
        """
        Args:
            adapter: 浏览器适配器，不提供时按配置创建 DrissionPageAdapter
            config: SpiderConfig，不提供时使用默认值
            pool: 外部创建的 TabPool（可选），不提供时按配置创建
            parent_logger: 父组件的 logger（可选，用于共享日志）
            log_config: 日志配置（可选）
        """
        self.config = config or SpiderConfig()
        self.attach_logger(parent_logger, log_config)

        if pool is not None:
            self.adapter = pool.adapter
            self.pool = pool
        else:
            self.adapter = adapter or self._create_default_adapter()
            self.pool = TabPool(
                self.adapter,
                max_tabs=self.config.max_tabs,
                acquire_timeout=self.config.acquire_timeout,
                headless=self.config.headless,
                parent_logger=parent_logger,
                log_config=log_config,
            )
        self.navigation_timeout = self.config.navigation_timeout

    def _create_default_adapter(self) -> BrowserAdapter:
        # 只有真正用到 Chrome 时才导入 DrissionPage
        from ..core.browser.drission_page_adapter import DrissionPageAdapter
        return DrissionPageAdapter(
            profile_path=self.config.profile_path,
            user_agent=self.config.user_agent,
            viewport=self.config.viewport,
            browser_timeout=self.config.browser_timeout,
            request_timeout=self.config.request_timeout,
        )

    # --- Lifecycle ---

    @property
    def closed(self) -> bool:
        return self.pool.closed

    async def start(self):
        """提前启动浏览器（可选，第一次 fetch_links 也会懒启动）"""
        await self.pool.initialize()
        if self.config.cleanup_interval and not self.pool.reaper_running:
            self.pool.start_idle_reaper(self.config.cleanup_interval, self.config.idle_max_age)

    async def close(self):
        await self.pool.shutdown()

    async def __aenter__(self) -> 'PageRenderer':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def get_stats(self) -> dict:
        return self.pool.get_stats()

    # --- Fetch ---

    async def fetch_links(self, url: str) -> List[LinkData]:
        """
        抓取页面上的所有链接

        Raises:
            InvalidUrlError: url 不是 http(s) 地址
            FetchFailedError: 导航 / 提取失败，或浏览器断线
            PoolExhaustedError: 等待标签页超时
            PoolClosedError: 渲染器已关闭
        """
        if not is_http_url(url):
            raise InvalidUrlError(url)

        try:
            async with self.pool.lease() as session:
                anchors = await self._load_anchors(session, url)
        except BrowserDisconnectedError as e:
            # 创建标签页时断线，池已经自行复位
            raise FetchFailedError(url, str(e)) from e

        links = to_link_data(anchors, url)
        self.logger.debug(f"Fetched {url}: {len(links)} link(s)")
        return links

    async def _load_anchors(self, session: TabSession, url: str) -> List[RawAnchor]:
        try:
            await self.adapter.navigate(session.handle, url, timeout=self.navigation_timeout)
            return await self.adapter.extract_links(session.handle)
        except BrowserDisconnectedError as e:
            # 只复位标签页所属的那一代浏览器，旧代的迟到断线被池忽略
            await self.pool.handle_disconnect(session.generation)
            raise FetchFailedError(url, str(e)) from e
        except FetchFailedError:
            raise
        except Exception as e:
            raise FetchFailedError(url, f"{type(e).__name__}: {e}") from e
