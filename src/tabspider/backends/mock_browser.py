import asyncio
import itertools
from typing import Dict, Iterable, List, Optional, Union

import yaml

from ..core.browser.browser_adapter import BrowserAdapter, RawAnchor
from ..core.exceptions import BrowserDisconnectedError, BrowserStartError, FetchFailedError

# 站点描述: {页面 URL: [href 字符串 或 {"href", "text", "title"}]}
SiteGraph = Dict[str, List[Union[str, dict]]]


class MockTab:
    _ids = itertools.count(1)

    def __init__(self, epoch: int = 0):
        self.tab_id = f"mock-tab-{next(self._ids)}"
        # 打开它的那次浏览器启动；浏览器重启后旧标签页失效
        self.epoch = epoch
        self.url = "about:blank"
        self.closed = False

    def __repr__(self):
        return f"MockTab({self.tab_id}, url={self.url!r})"


class MockBrowserAdapter(BrowserAdapter):
    """模拟浏览器，按内存中的站点图返回链接，方便在没有 Chrome 的环境下测试调度流程"""

    def __init__(
        self,
        site: Optional[SiteGraph] = None,
        latency: float = 0.0,
        failing_urls: Iterable[str] = (),
        disconnect_urls: Iterable[str] = (),
        dropped_urls: Iterable[str] = (),
        delays: Optional[Dict[str, float]] = None,
        start_delay: float = 0.0,
        start_failures: int = 0,
    ):
        self.site: SiteGraph = dict(site or {})
        self.latency = latency
        self.failing_urls = set(failing_urls)
        self.disconnect_urls = set(disconnect_urls)
        # 只丢失标签页连接，浏览器进程仍在运行
        self.dropped_urls = set(dropped_urls)
        self.delays = dict(delays or {})
        self.start_delay = start_delay
        self.start_failures = start_failures

        self.running = False
        self.headless: Optional[bool] = None
        self.start_count = 0
        self.close_count = 0
        self.tabs_opened = 0
        self.tabs_closed = 0
        self.navigations: List[str] = []
        self.active_navigations = 0
        self.max_active_navigations = 0

    @classmethod
    def from_file(cls, path: str, **kwargs) -> 'MockBrowserAdapter':
        """从 YAML / JSON 文件加载站点图"""
        with open(path, 'r', encoding='utf-8') as f:
            site = yaml.safe_load(f) or {}
        if not isinstance(site, dict):
            raise ValueError(f"Mock site file must contain a mapping of page URL -> links: {path}")
        return cls(site=site, **kwargs)

    async def start(self, headless: bool = True):
        self.start_count += 1
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.start_failures > 0:
            self.start_failures -= 1
            raise BrowserStartError("Mock browser refused to start")
        self.headless = headless
        self.running = True

    async def close(self):
        self.close_count += 1
        self.running = False

    def crash(self):
        """模拟浏览器进程意外退出"""
        self.running = False

    async def create_tab(self) -> MockTab:
        if not self.running:
            raise BrowserDisconnectedError("Mock browser is not running")
        self.tabs_opened += 1
        return MockTab(epoch=self.start_count)

    def _check_tab(self, tab: MockTab):
        if not self.running:
            raise BrowserDisconnectedError("Mock browser is not running")
        if tab.epoch != self.start_count:
            raise BrowserDisconnectedError(f"{tab.tab_id} belongs to a browser that was closed")

    async def close_tab(self, tab: MockTab):
        tab.closed = True
        self.tabs_closed += 1

    async def navigate(self, tab: MockTab, url: str, timeout: Optional[float] = None):
        self._check_tab(tab)

        self.navigations.append(url)
        self.active_navigations += 1
        self.max_active_navigations = max(self.max_active_navigations, self.active_navigations)
        try:
            delay = self.delays.get(url, self.latency)
            if delay:
                await asyncio.sleep(delay)
            self._check_tab(tab)
            if url in self.disconnect_urls:
                self.crash()
                raise BrowserDisconnectedError(f"Mock browser crashed while loading {url}")
            if url in self.dropped_urls:
                raise BrowserDisconnectedError(f"Mock tab lost its connection while loading {url}")
            if url in self.failing_urls:
                raise FetchFailedError(url, "mock navigation error")
            if url not in self.site:
                raise FetchFailedError(url, "mock 404")
            tab.url = url
        finally:
            self.active_navigations -= 1

    async def extract_links(self, tab: MockTab) -> List[RawAnchor]:
        self._check_tab(tab)

        anchors = []
        for item in self.site.get(tab.url) or []:
            if isinstance(item, str):
                anchors.append({"href": item, "text": item, "title": ""})
            else:
                anchors.append({
                    "href": item.get("href", item.get("url", "")),
                    "text": item.get("text", ""),
                    "title": item.get("title", ""),
                })
        return anchors
