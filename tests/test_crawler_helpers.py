"""
测试 URL 规范化与候选链接过滤

验证：
1. normalize_url 幂等，且从不抛异常
2. 已访问的 URL 不会再次进入队列
3. 同域 / 排除 / 包含规则
"""

import logging

import pytest

from tabspider.core.browser.browser_common import CrawlRunState, FailureKind, LinkData
from tabspider.core.loader import CrawlOptions
from tabspider.skills.crawler_helpers import (
    CrawlerHelperMixin,
    contains_any,
    hostname_of,
    is_http_url,
    normalize_url,
)


class FilterTester(CrawlerHelperMixin):
    """测试用，只需要 logger 属性"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)


@pytest.mark.parametrize("raw, expected", [
    ("https://example.com/a#section", "https://example.com/a"),
    ("https://example.com//a///b", "https://example.com/a/b"),
    ("HTTPS://Example.COM/Path", "https://example.com/Path"),
    ("https://example.com", "https://example.com/"),
    ("https://example.com/?q=1#x", "https://example.com/?q=1"),
    ("/relative/path", "/relative/path"),
    ("not a url", "not a url"),
    ("", ""),
])
def test_normalize_url(raw, expected):
    assert normalize_url(raw) == expected


@pytest.mark.parametrize("raw", [
    "https://example.com//x//y#frag",
    "HTTP://EXAMPLE.com",
    "mailto:someone@example.com",
    "javascript:void(0)",
    "http://[::1",  # urlsplit 会抛 ValueError
])
def test_normalize_url_is_idempotent(raw):
    once = normalize_url(raw)
    assert normalize_url(once) == once


def test_normalize_url_never_raises_on_garbage():
    assert normalize_url("http://[::1") == "http://[::1"


def test_host_and_scheme_helpers():
    assert hostname_of("https://Docs.Example.com/x") == "docs.example.com"
    assert hostname_of("/x") is None
    assert is_http_url("http://example.com")
    assert not is_http_url("ftp://example.com")
    assert not is_http_url("https://")
    assert contains_any("https://example.com/a.pdf", [".pdf"])
    assert not contains_any("https://example.com/a", [])


def test_visited_url_is_not_followed():
    tester = FilterTester()
    ctx = CrawlRunState("https://example.com/")
    options = CrawlOptions()

    url = "https://example.com/about"
    assert tester._should_follow(url, ctx, "example.com", options)

    ctx.mark_visited(url)
    assert not tester._should_follow(url, ctx, "example.com", options)


def test_same_domain_rule():
    tester = FilterTester()
    ctx = CrawlRunState("https://example.com/")

    same = CrawlOptions(same_domain=True)
    assert not tester._should_follow("https://other.com/", ctx, "example.com", same)
    # 子域名也是不同的 hostname
    assert not tester._should_follow("https://blog.example.com/", ctx, "example.com", same)

    anywhere = CrawlOptions(same_domain=False)
    assert tester._should_follow("https://other.com/", ctx, "example.com", anywhere)


def test_default_exclude_patterns():
    tester = FilterTester()
    ctx = CrawlRunState("https://example.com/")
    options = CrawlOptions()

    for url in (
        "https://example.com/report.pdf",
        "https://example.com/files/archive.zip",
        "https://example.com/page#top",
        "mailto:info@example.com",
        "javascript:void(0)",
    ):
        assert not tester._should_follow(url, ctx, "example.com", options), url


def test_include_patterns_are_plain_substrings():
    tester = FilterTester()
    ctx = CrawlRunState("https://example.com/")
    options = CrawlOptions(include_patterns=["/docs/"], exclude_patterns=[])

    assert tester._should_follow("https://example.com/docs/intro", ctx, "example.com", options)
    assert not tester._should_follow("https://example.com/blog/post", ctx, "example.com", options)

    # 不做通配符解释
    wildcard = CrawlOptions(include_patterns=["/docs/*"], exclude_patterns=[])
    assert not tester._should_follow("https://example.com/docs/intro", ctx, "example.com", wildcard)


def test_relative_candidate_is_not_followed():
    tester = FilterTester()
    ctx = CrawlRunState("https://example.com/")
    options = CrawlOptions(same_domain=False, exclude_patterns=[])
    assert not tester._should_follow("/about", ctx, "example.com", options)


def test_run_state_batches_and_records():
    ctx = CrawlRunState("https://example.com/")
    assert ctx.enqueue("https://example.com/a")
    assert not ctx.enqueue("https://example.com/a")
    assert ctx.enqueue("https://example.com/b")

    batch = ctx.take_batch()
    assert batch == ["https://example.com/a", "https://example.com/b"]
    assert ctx.frontier == []
    # 下一批次可以重新排队（是否已访问由 _should_follow 判断）
    assert ctx.enqueue("https://example.com/a")

    ctx.record_page("https://example.com/a", [LinkData(url="https://example.com/b", text="b")])
    ctx.record_page("https://example.com/b", [])
    ctx.record_failure("https://example.com/c", FailureKind.FETCH_FAILED, "boom")

    assert ctx.total_links == 1
    assert list(ctx.link_map) == ["https://example.com/a", "https://example.com/b"]
    assert ctx.failures[0].to_dict() == {
        "url": "https://example.com/c",
        "kind": "fetch_failed",
        "message": "boom",
    }
