"""
测试 DrissionPageAdapter 的浏览器生命周期（不启动真实 Chrome）

验证：
1. 标签页级别的断线不会丢掉适配器持有的浏览器，复位由 TabPool 按代数决定
2. 重新 start() 前先退出旧浏览器，不留下孤儿进程
"""

import asyncio

import pytest

from DrissionPage.errors import BrowserConnectError, PageDisconnectedError

from tabspider.core.browser import drission_page_adapter
from tabspider.core.browser.drission_page_adapter import DrissionPageAdapter
from tabspider.core.exceptions import BrowserDisconnectedError


class FakePage:
    """代替 ChromiumPage，只记录 quit 次数"""

    def __init__(self, addr_or_opts=None):
        self.options = addr_or_opts
        self.quit_calls = 0

    def quit(self):
        self.quit_calls += 1

    def new_tab(self):
        raise BrowserConnectError("connection lost")


class LostTab:
    def get(self, url, retry=0, timeout=None):
        raise PageDisconnectedError("tab connection lost")

    def run_js(self, script):
        raise PageDisconnectedError("tab connection lost")


def make_adapter(monkeypatch):
    monkeypatch.setattr(drission_page_adapter, "ChromiumPage", FakePage)
    adapter = DrissionPageAdapter()
    adapter.build_options = lambda headless=True: "options"
    return adapter


def test_tab_disconnect_keeps_current_browser(monkeypatch):
    async def scenario():
        adapter = make_adapter(monkeypatch)
        await adapter.start()
        browser = adapter.browser

        with pytest.raises(BrowserDisconnectedError):
            await adapter.navigate(LostTab(), "https://example.com/")
        with pytest.raises(BrowserDisconnectedError):
            await adapter.extract_links(LostTab())
        with pytest.raises(BrowserDisconnectedError):
            await adapter.create_tab()
        return adapter, browser

    adapter, browser = asyncio.run(scenario())
    assert adapter.browser is browser
    assert browser.quit_calls == 0


def test_restart_quits_previous_browser(monkeypatch):
    async def scenario():
        adapter = make_adapter(monkeypatch)
        await adapter.start()
        first = adapter.browser
        await adapter.start()
        second = adapter.browser
        await adapter.close()
        return adapter, first, second

    adapter, first, second = asyncio.run(scenario())
    assert first is not second
    assert first.quit_calls == 1
    assert second.quit_calls == 1
    assert second.options == "options"
    assert adapter.browser is None
