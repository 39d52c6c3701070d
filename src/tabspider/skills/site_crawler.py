"""
SiteCrawler - 分批广度优先的整站链接爬取

每一层深度是一个批次：批次内所有 URL 并发抓取、各自失败，整批结束后才进入下一层。
批次内的并发度由标签页池容量隐式限制。
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Union, TYPE_CHECKING

from ..core.browser.browser_common import CrawlFailure, CrawlRunState, FailureKind, LinkData
from ..core.exceptions import (
    FetchFailedError,
    InvalidUrlError,
    PoolClosedError,
    PoolExhaustedError,
    RunAbortedError,
    TabPoolError,
    TabSpiderError,
)
from ..core.loader import CrawlOptions
from ..core.log_util import AutoLoggerMixin
from .crawler_helpers import CrawlerHelperMixin, hostname_of, is_http_url, normalize_url

if TYPE_CHECKING:
    from ..core.log_config import LogConfig
    from ..core.page_renderer import PageRenderer


@dataclass
class CrawlResult:
    """
    一次 crawl() 的结果

    total_pages 是成功抓取（进入 link_map）的页面数，不含失败和跳过的 URL。
    success 只说明遍历循环完整跑完；单页失败记录在 failures 中。
    """
    success: bool
    base_url: str
    link_map: Dict[str, List[LinkData]] = field(default_factory=dict)
    total_pages: int = 0
    total_links: int = 0
    error: Optional[str] = None
    failures: List[CrawlFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """遍历完成且没有任何单页失败"""
        return self.success and not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "base_url": self.base_url,
            "total_pages": self.total_pages,
            "total_links": self.total_links,
            "error": self.error,
            "link_map": {
                url: [link.to_dict() for link in links]
                for url, links in self.link_map.items()
            },
            "failures": [failure.to_dict() for failure in self.failures],
        }


class SiteCrawler(AutoLoggerMixin, CrawlerHelperMixin):
    """
    站点爬虫

    每次 crawl() 都新建一个 CrawlRunState，同一个实例上的并发调用互不干扰；
    get_stats() 等查询方法反映最近一次开始的爬取。
    """

    _custom_log_filename = "site_crawler.log"

    def __init__(
        self,
        renderer: 'PageRenderer',
        parent_logger: Optional[logging.Logger] = None,
        log_config: Optional['LogConfig'] = None,
    ):
        """
        Args:
            renderer: 提供 async fetch_links(url) 的页面渲染器；
                      如果还有 closed 属性和 async start()，爬取前会先检查并启动
            parent_logger: 父组件的 logger（可选，用于共享日志）
            log_config: 日志配置（可选）
        """
        self.renderer = renderer
        self.attach_logger(parent_logger, log_config)
        self._state: Optional[CrawlRunState] = None

    def _get_log_context(self) -> dict:
        return {"component": "crawler", "base_url": self._state.base_url if self._state else ""}

    # ==========================================
    # 1. 主流程
    # ==========================================

    async def crawl(
        self,
        start_url: str,
        options: Union[CrawlOptions, Dict[str, Any], None] = None,
    ) -> CrawlResult:
        """
        从 start_url 开始分批广度优先爬取

        Args:
            start_url: 起始 URL
            options: CrawlOptions 或同名键的字典，缺省使用默认值

        Returns:
            CrawlResult；结构性错误返回 success=False 和 error，不抛异常
        """
        base_url = normalize_url(start_url) if isinstance(start_url, str) else start_url
        state = CrawlRunState(base_url)
        self._state = state

        try:
            opts = options if isinstance(options, CrawlOptions) else CrawlOptions.from_dict(options)
            base_host = await self._prepare(base_url)

            self.echo(
                f"Crawl started: {base_url} (max_depth={opts.max_depth}, "
                f"max_pages={opts.max_pages}, same_domain={opts.same_domain})"
            )
            state.enqueue(base_url)
            await self._process_queue(state, base_host, opts)

        except Exception as e:
            if isinstance(e, TabSpiderError):
                self.logger.error(f"Crawl aborted: {start_url}: {e}")
            else:
                self.logger.exception(f"Crawl aborted: {start_url}")
            return CrawlResult(
                success=False,
                base_url=start_url,
                error=str(e) or type(e).__name__,
            )

        result = CrawlResult(
            success=True,
            base_url=base_url,
            link_map=state.link_map,
            total_pages=len(state.link_map),
            total_links=state.total_links,
            failures=list(state.failures),
        )
        self.echo(
            f"Crawl finished: {base_url} pages={result.total_pages} links={result.total_links} "
            f"visited={len(state.visited_urls)} failures={len(result.failures)}"
        )
        return result

    async def _prepare(self, base_url: str) -> Optional[str]:
        """校验起始 URL、检查并启动渲染器，返回起始 hostname"""
        if not isinstance(base_url, str) or not is_http_url(base_url):
            raise InvalidUrlError(base_url)

        if getattr(self.renderer, "closed", False):
            raise RunAbortedError("Page renderer is closed")

        start = getattr(self.renderer, "start", None)
        if start is not None:
            try:
                await start()
            except PoolClosedError as e:
                raise RunAbortedError(f"Page renderer is closed: {e}") from e
            except TabPoolError as e:
                raise RunAbortedError(f"Page renderer failed to start: {e}") from e

        return hostname_of(base_url)

    async def _process_queue(self, state: CrawlRunState, base_host: Optional[str], opts: CrawlOptions):
        while state.frontier and state.depth < opts.max_depth:
            batch = state.take_batch()
            self.logger.info(f"Depth {state.depth}: dispatching {len(batch)} url(s)")

            results = await asyncio.gather(
                *(self._process_url(url, state, opts) for url in batch)
            )

            # 整批结束后再筛选下一批；PoolClosedError 在这里中止整次爬取
            for outcome in results:
                if isinstance(outcome, BaseException):
                    raise outcome
                for link in outcome:
                    candidate = normalize_url(link.url)
                    if self._should_follow(candidate, state, base_host, opts):
                        state.enqueue(candidate)

            state.depth += 1

            if len(state.visited_urls) >= opts.max_pages:
                self.logger.info(f"Page budget of {opts.max_pages} reached")
                break

            if opts.delay and opts.delay > 0 and state.frontier and state.depth < opts.max_depth:
                await asyncio.sleep(opts.delay / 1000)

    async def _process_url(self, url: str, state: CrawlRunState, opts: CrawlOptions):
        """
        抓取单个 URL

        去重检查和 mark_visited 之间没有 await，保证同一 URL 不会同时在途两次。

        Returns:
            发现的链接列表；PoolClosedError 作为返回值交给批次循环处理
        """
        if state.has_visited(url) or len(state.visited_urls) >= opts.max_pages:
            return []

        state.mark_visited(url)

        try:
            links = await self.renderer.fetch_links(url)
        except PoolClosedError as e:
            return e
        except FetchFailedError as e:
            self._record_failure(state, url, FailureKind.FETCH_FAILED, e.reason)
            return []
        except PoolExhaustedError as e:
            self._record_failure(state, url, FailureKind.POOL_EXHAUSTED, str(e))
            return []
        except InvalidUrlError as e:
            self._record_failure(state, url, FailureKind.INVALID_URL, str(e))
            return []
        except TabPoolError as e:
            self._record_failure(state, url, FailureKind.FETCH_FAILED, str(e))
            return []
        except Exception as e:
            self.logger.exception(f"Unexpected error while processing {url}")
            state.record_failure(url, FailureKind.UNEXPECTED, f"{type(e).__name__}: {e}")
            return []

        state.record_page(url, links)
        return links

    def _record_failure(self, state: CrawlRunState, url: str, kind: FailureKind, message: str):
        self.logger.warning(f"Failed to process URL {url} [{kind.value}]: {message}")
        state.record_failure(url, kind, message)

    # ==========================================
    # 2. 查询 (Post-run Views)
    # ==========================================

    @property
    def last_run(self) -> Optional[CrawlRunState]:
        return self._state

    def _link_map(self) -> Dict[str, List[LinkData]]:
        return self._state.link_map if self._state else {}

    def get_stats(self) -> Dict[str, Any]:
        visited = self._state.visited_urls if self._state else set()
        unique_domains: Set[str] = set()
        for url in visited:
            host = hostname_of(url)
            if host:
                unique_domains.add(host)

        total_links = self._state.total_links if self._state else 0
        return {
            "visited_urls": len(visited),
            "total_links": total_links,
            "unique_domains": unique_domains,
            "average_links_per_page": total_links / len(visited) if visited else 0,
        }

    def export_link_map(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            url: [link.to_dict() for link in links]
            for url, links in self._link_map().items()
        }

    def get_internal_links(self) -> Dict[str, List[LinkData]]:
        return self._filter_links(internal=True)

    def get_external_links(self) -> Dict[str, List[LinkData]]:
        return self._filter_links(internal=False)

    def _filter_links(self, internal: bool) -> Dict[str, List[LinkData]]:
        filtered = {}
        for url, links in self._link_map().items():
            matching = [link for link in links if link.is_internal == internal]
            if matching:
                filtered[url] = matching
        return filtered
