"""
基于 DrissionPage 库的 BrowserAdapter 实现类。

该实现使用 DrissionPage 的 ChromiumPage 来驱动 Chrome 浏览器。
DrissionPage 的调用都是阻塞的，统一放进 asyncio.to_thread 执行。
"""

from typing import List, Optional, Any, Tuple
import os
import hashlib
import asyncio

from DrissionPage import ChromiumPage, ChromiumOptions
from DrissionPage.errors import BrowserConnectError, PageDisconnectedError

from .browser_adapter import BrowserAdapter, TabHandle, RawAnchor, EXTRACT_LINKS_JS
from ...core.exceptions import BrowserDisconnectedError, BrowserStartError, FetchFailedError
from ...core.loader import DEFAULT_USER_AGENT
from ...core.log_util import AutoLoggerMixin

# 标签页或浏览器的调试连接断了。是否重启由 TabPool 按浏览器代数决定，这里不动 self.browser
DISCONNECT_ERRORS = (BrowserConnectError, PageDisconnectedError)


class DrissionPageAdapter(BrowserAdapter, AutoLoggerMixin):
    """
    基于 DrissionPage 库的浏览器适配器实现。

    支持指定 Chrome profile 路径来实现会话持久化；
    不指定时使用自动端口和临时用户目录，多个实例互不干扰。
    """

    def __init__(
        self,
        profile_path: Optional[str] = None,
        user_agent: Optional[str] = DEFAULT_USER_AGENT,
        viewport: Tuple[int, int] = (1920, 1080),
        browser_timeout: float = 30.0,
        request_timeout: float = 10.0,
    ):
        """
        Args:
            profile_path: Chrome profile 的路径。提供时以该路径为 profile 启动 Chrome。
            user_agent: 浏览器 User-Agent
            viewport: 窗口大小 (宽, 高)
            browser_timeout: 浏览器启动/连接超时（秒）
            request_timeout: 页面默认超时（秒），navigate 未指定 timeout 时使用
        """
        self.profile_path = profile_path
        self.user_agent = user_agent
        self.viewport = viewport
        self.browser_timeout = browser_timeout
        self.request_timeout = request_timeout

        self.browser: Optional[Any] = None

    def _hash_path_to_port(self, profile_path: str) -> int:
        """
        根据 profile_path 生成固定端口号（9200-9500 范围）

        相同的 profile_path 总是得到相同的端口，不同的 profile_path 互相隔离。
        """
        hash_val = int(hashlib.md5(profile_path.encode()).hexdigest(), 16)
        return 9200 + (hash_val % 300)

    def build_options(self, headless: bool = True) -> ChromiumOptions:
        """根据配置生成 ChromiumOptions"""
        co = ChromiumOptions()

        if self.profile_path:
            co.set_user_data_path(self.profile_path)
            co.set_local_port(self._hash_path_to_port(self.profile_path))
        else:
            co.auto_port()

        co.set_argument('--no-sandbox')
        co.set_argument('--disable-setuid-sandbox')
        if self.viewport:
            co.set_argument('--window-size', f'{self.viewport[0]},{self.viewport[1]}')
        if self.user_agent:
            co.set_user_agent(self.user_agent)
        co.set_timeouts(base=self.request_timeout, page_load=self.request_timeout)
        co.mute(True)

        if headless:
            co.headless()
        return co

    async def start(self, headless: bool = True):
        """启动浏览器进程"""
        if self.browser is not None:
            # 上一个浏览器可能只是丢了调试连接，进程还在
            await self.close()

        os.environ["no_proxy"] = "localhost,127.0.0.1"
        co = self.build_options(headless=headless)

        try:
            self.browser = await asyncio.wait_for(
                asyncio.to_thread(ChromiumPage, addr_or_opts=co),
                timeout=self.browser_timeout,
            )
        except Exception as e:
            self.browser = None
            self.logger.exception("Failed to start Chromium")
            raise BrowserStartError(f"Browser initialization failed: {e}") from e

        self.logger.info(f"Chromium started (headless={headless}, profile={self.profile_path})")

    async def close(self):
        """关闭浏览器进程并清理资源"""
        if self.browser:
            try:
                await asyncio.to_thread(self.browser.quit)
            except Exception:
                # 浏览器可能已经退出
                self.logger.exception("Error closing browser")
            finally:
                self.browser = None

    # --- Tab Management (标签页管理) ---

    async def create_tab(self) -> TabHandle:
        if not self.browser:
            raise BrowserDisconnectedError("Browser not started. Call start() first.")

        try:
            new_tab = await asyncio.to_thread(self.browser.new_tab)
        except DISCONNECT_ERRORS as e:
            raise BrowserDisconnectedError(f"Browser disconnected while opening a tab: {e}") from e

        self.logger.debug(f"Created new tab {getattr(new_tab, 'tab_id', '?')}")
        return new_tab

    async def close_tab(self, tab: TabHandle):
        if tab is None:
            return
        try:
            await asyncio.to_thread(tab.close)
        except DISCONNECT_ERRORS:
            # 标签页或浏览器已经不在了，没有需要清理的
            self.logger.debug("Tab already gone while closing")

    # --- Navigation & Links (导航与链接) ---

    async def navigate(self, tab: TabHandle, url: str, timeout: Optional[float] = None):
        if not self.browser:
            raise BrowserDisconnectedError("Browser not started. Call start() first.")

        timeout = timeout if timeout is not None else self.request_timeout
        try:
            ok = await asyncio.to_thread(tab.get, url, retry=0, timeout=timeout)
        except DISCONNECT_ERRORS as e:
            raise BrowserDisconnectedError(f"Browser disconnected during navigation: {e}") from e
        except Exception as e:
            raise FetchFailedError(url, f"navigation error: {e}") from e

        if not ok:
            raise FetchFailedError(url, f"navigation did not complete within {timeout}s")

    async def extract_links(self, tab: TabHandle) -> List[RawAnchor]:
        try:
            anchors = await asyncio.to_thread(tab.run_js, EXTRACT_LINKS_JS)
        except DISCONNECT_ERRORS as e:
            raise BrowserDisconnectedError(f"Browser disconnected during link extraction: {e}") from e

        if not isinstance(anchors, list):
            self.logger.warning(f"Link extraction returned {type(anchors).__name__}, expected list")
            return []
        return [a for a in anchors if isinstance(a, dict)]
