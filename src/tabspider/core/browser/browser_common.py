"""
公共浏览器数据结构

为 TabPool、PageRenderer 和 SiteCrawler 提供共享的数据结构。
"""

import time
import uuid
from abc import ABC
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional, Set

from ...core.browser.browser_adapter import TabHandle


@dataclass
class TabSession:
    """
    物理标签页租约 (Leased Tab)

    in_use 同一时刻只属于一个调用者；release 总是把它改回 False。
    generation 是创建它的浏览器代数，断线后旧代的标签页不再可用。
    """
    handle: TabHandle
    tab_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    in_use: bool = False
    created_at: float = field(default_factory=time.time)
    last_used_at: float = field(default_factory=time.time)
    generation: int = 0

    def idle_for(self, now: Optional[float] = None) -> float:
        """空闲了多少秒（使用中返回 0）"""
        if self.in_use:
            return 0.0
        return (now if now is not None else time.time()) - self.last_used_at


@dataclass
class LinkData:
    """页面上发现的一条链接"""
    url: str
    text: str
    title: Optional[str] = None
    is_internal: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class FailureKind(Enum):
    """单页失败的类别"""
    FETCH_FAILED = "fetch_failed"
    POOL_EXHAUSTED = "pool_exhausted"
    INVALID_URL = "invalid_url"
    UNEXPECTED = "unexpected"


@dataclass
class CrawlFailure:
    url: str
    kind: FailureKind
    message: str = ""

    def to_dict(self) -> dict:
        return {"url": self.url, "kind": self.kind.value, "message": self.message}


class BaseCrawlerContext(ABC):
    """
    爬虫上下文基类
    提供访问记录和去重功能。
    """

    def __init__(self):
        self.visited_urls: Set[str] = set()

    def __repr__(self):
        return f"{self.__class__.__name__}(visited={len(self.visited_urls)})"

    def mark_visited(self, url: str):
        """标记 URL 为已访问（或已派发）"""
        self.visited_urls.add(url)

    def has_visited(self, url: str) -> bool:
        return url in self.visited_urls


class CrawlRunState(BaseCrawlerContext):
    """
    单次 crawl() 调用的运行状态

    每次调用都新建一个，不在并发调用之间共享。
    link_map 依赖 dict 的插入顺序，按页面抓取成功的先后排列。
    """

    def __init__(self, base_url: str):
        super().__init__()
        self.base_url = base_url
        self.link_map: Dict[str, List[LinkData]] = {}
        self.frontier: List[str] = []
        self.depth = 0
        self.failures: List[CrawlFailure] = []
        self._queued: Set[str] = set()

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(base_url={self.base_url!r}, depth={self.depth}, "
            f"visited={len(self.visited_urls)}, pages={len(self.link_map)})"
        )

    def enqueue(self, url: str) -> bool:
        """加入下一批次；同一批次内重复的 URL 只保留一次"""
        if url in self._queued:
            return False
        self._queued.add(url)
        self.frontier.append(url)
        return True

    def take_batch(self) -> List[str]:
        """取出当前 frontier 作为本批次，并清空 frontier"""
        batch = self.frontier
        self.frontier = []
        self._queued = set()
        return batch

    def record_page(self, url: str, links: List[LinkData]):
        self.link_map[url] = links

    def record_failure(self, url: str, kind: FailureKind, message: str):
        self.failures.append(CrawlFailure(url=url, kind=kind, message=message))

    @property
    def total_links(self) -> int:
        return sum(len(links) for links in self.link_map.values())
