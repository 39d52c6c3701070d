"""
测试 PageRenderer

fetch_links 的每一条路径（成功、失败、断线）都必须把标签页还给池。
"""

import asyncio

import pytest

from tabspider.backends.mock_browser import MockBrowserAdapter
from tabspider.core.exceptions import FetchFailedError, InvalidUrlError, PoolClosedError
from tabspider.core.loader import SpiderConfig
from tabspider.core.page_renderer import PageRenderer, to_link_data

SITE = {
    "https://example.com/": [
        {"href": "https://example.com/about", "text": "About", "title": "About us"},
        {"href": "https://other.org/", "text": "Partner"},
        {"href": "https://example.com/empty", "text": "   "},
        {"href": "", "text": "No href"},
    ],
    "https://example.com/about": [],
}


def make_renderer(**adapter_kwargs):
    adapter = MockBrowserAdapter(site=SITE, **adapter_kwargs)
    return adapter, PageRenderer(adapter=adapter, config=SpiderConfig(max_tabs=2, acquire_timeout=1))


def test_to_link_data_drops_incomplete_anchors():
    links = to_link_data(SITE["https://example.com/"], "https://example.com/")
    assert [link.url for link in links] == ["https://example.com/about", "https://other.org/"]

    about, partner = links
    assert about.is_internal
    assert about.title == "About us"
    assert not partner.is_internal
    assert partner.title is None


def test_fetch_links_success_releases_tab():
    async def scenario():
        adapter, renderer = make_renderer()
        async with renderer:
            links = await renderer.fetch_links("https://example.com/")
            stats = renderer.get_stats()
        return adapter, renderer, links, stats

    adapter, renderer, links, stats = asyncio.run(scenario())
    assert len(links) == 2
    assert stats["total"] == 1
    assert stats["in_use"] == 0
    assert adapter.navigations == ["https://example.com/"]
    assert renderer.closed
    assert adapter.close_count == 1


def test_fetch_failure_releases_tab():
    async def scenario():
        adapter, renderer = make_renderer(failing_urls=["https://example.com/about"])
        with pytest.raises(FetchFailedError) as excinfo:
            await renderer.fetch_links("https://example.com/about")
        with pytest.raises(FetchFailedError) as missing:
            await renderer.fetch_links("https://example.com/missing")
        stats = renderer.get_stats()
        await renderer.close()
        return excinfo.value, missing.value, stats

    error, missing, stats = asyncio.run(scenario())
    assert error.url == "https://example.com/about"
    assert "mock navigation error" in str(error)
    assert missing.reason == "mock 404"
    assert stats["in_use"] == 0
    assert stats["total"] == 1


def test_invalid_url_never_starts_browser():
    async def scenario():
        adapter, renderer = make_renderer()
        for url in ("ftp://example.com/file", "/relative", "not a url"):
            with pytest.raises(InvalidUrlError):
                await renderer.fetch_links(url)
        await renderer.close()
        return adapter

    adapter = asyncio.run(scenario())
    assert adapter.start_count == 0
    assert adapter.tabs_opened == 0


def test_disconnect_resets_pool_and_next_fetch_restarts_browser():
    async def scenario():
        adapter, renderer = make_renderer(disconnect_urls=["https://example.com/about"])
        await renderer.fetch_links("https://example.com/")
        with pytest.raises(FetchFailedError):
            await renderer.fetch_links("https://example.com/about")
        assert not renderer.pool.initialized
        assert len(renderer.pool) == 0

        links = await renderer.fetch_links("https://example.com/")
        await renderer.close()
        return adapter, links

    adapter, links = asyncio.run(scenario())
    assert adapter.start_count == 2
    assert len(links) == 2


def test_closed_renderer_raises_pool_closed():
    async def scenario():
        _, renderer = make_renderer()
        await renderer.close()
        with pytest.raises(PoolClosedError):
            await renderer.fetch_links("https://example.com/")

    asyncio.run(scenario())


def test_start_launches_idle_reaper_when_configured():
    async def scenario():
        adapter = MockBrowserAdapter(site=SITE)
        config = SpiderConfig(max_tabs=1, cleanup_interval=60)
        renderer = PageRenderer(adapter=adapter, config=config)
        await renderer.start()
        running = renderer.pool.reaper_running
        await renderer.close()
        return running, renderer.pool.reaper_running

    running, after_close = asyncio.run(scenario())
    assert running
    assert not after_close


def test_lost_tab_connection_restarts_without_orphaning_browser():
    async def scenario():
        adapter, renderer = make_renderer(dropped_urls=["https://example.com/bad"])
        with pytest.raises(FetchFailedError):
            await renderer.fetch_links("https://example.com/bad")
        links = await renderer.fetch_links("https://example.com/")
        counts = (adapter.start_count, adapter.close_count)
        await renderer.close()
        return adapter, links, counts

    adapter, links, counts = asyncio.run(scenario())
    assert len(links) == 2
    # 旧浏览器在重启前被关闭，shutdown 再关一次新浏览器
    assert counts == (2, 1)
    assert adapter.close_count == 2


def test_late_failure_from_old_browser_does_not_reset_new_one():
    async def scenario():
        adapter = MockBrowserAdapter(
            site=SITE,
            dropped_urls=["https://example.com/bad"],
            delays={"https://example.com/about": 0.1},
        )
        renderer = PageRenderer(adapter=adapter, config=SpiderConfig(max_tabs=3, acquire_timeout=1))

        # about 还在旧浏览器上加载时，bad 触发断线，下一次抓取重启浏览器
        slow = asyncio.ensure_future(renderer.fetch_links("https://example.com/about"))
        await asyncio.sleep(0.02)
        with pytest.raises(FetchFailedError):
            await renderer.fetch_links("https://example.com/bad")
        await renderer.fetch_links("https://example.com/")
        generation = renderer.pool.generation

        with pytest.raises(FetchFailedError):
            await slow

        links = await renderer.fetch_links("https://example.com/")
        state = (adapter.start_count, renderer.pool.generation, renderer.pool.initialized)
        await renderer.close()
        return links, generation, state

    links, generation, state = asyncio.run(scenario())
    assert len(links) == 2
    assert state == (2, generation, True)
