"""
TabPool - 有界的浏览器标签页池

职责：
1. 懒启动浏览器（并发的第一批调用者共享同一次启动）
2. 按容量出借标签页，超出容量的调用者等待，超时抛出 PoolExhaustedError
3. 回收标签页，清理空闲过久的标签页
4. 浏览器断线时丢弃全部记录，下一次 acquire 重新启动
5. shutdown 后拒绝新的 acquire
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional, TYPE_CHECKING

from ..core.browser.browser_adapter import BrowserAdapter, TabHandle
from ..core.browser.browser_common import TabSession
from ..core.exceptions import (
    BrowserDisconnectedError,
    BrowserStartError,
    PoolClosedError,
    PoolExhaustedError,
)
from ..core.log_util import AutoLoggerMixin

if TYPE_CHECKING:
    from ..core.log_config import LogConfig


class TabPool(AutoLoggerMixin):
    """
    标签页池

    所有对会话表的修改都在 self._condition 的锁内完成；
    release / cleanup / 断线 / shutdown 都会唤醒等待者，不使用轮询。
    正在创建中的标签页（_creating）也计入容量。
    """

    _custom_log_filename = "tab_pool.log"

    def __init__(
        self,
        adapter: BrowserAdapter,
        max_tabs: int = 10,
        acquire_timeout: float = 30.0,
        headless: bool = True,
        parent_logger: Optional[logging.Logger] = None,
        log_config: Optional['LogConfig'] = None,
    ):
        """
        Args:
            adapter: 浏览器适配器
            max_tabs: 同时存在的标签页上限
            acquire_timeout: acquire() 默认等待时间（秒）
            headless: 是否以无头模式启动浏览器
            parent_logger: 父组件的 logger（可选，用于共享日志）
            log_config: 日志配置（可选）
        """
        if max_tabs < 1:
            raise ValueError(f"max_tabs must be >= 1, got {max_tabs}")

        self.adapter = adapter
        self.max_tabs = max_tabs
        self.acquire_timeout = acquire_timeout
        self.headless = headless
        self.attach_logger(parent_logger, log_config)

        self._sessions: Dict[str, TabSession] = {}  # tab_id → TabSession
        self._creating = 0
        self._condition = asyncio.Condition()

        self._started = False
        self._closed = False
        # 每次断线 / shutdown 加一；旧一代浏览器上打开的标签页直接丢弃
        self._generation = 0
        # 断线后旧浏览器可能还活着（只丢了调试连接），下一次启动前先关掉
        self._stale_browser = False
        self._init_task: Optional[asyncio.Future] = None
        self._reaper_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __repr__(self):
        return (
            f"TabPool(max_tabs={self.max_tabs}, total={len(self._sessions)}, "
            f"started={self._started}, closed={self._closed})"
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def initialized(self) -> bool:
        return self._started

    def _get_log_context(self) -> dict:
        return {"component": "pool", "generation": self._generation}

    # ==========================================
    # 1. 初始化 (Lazy Initialization)
    # ==========================================

    async def initialize(self):
        """
        启动浏览器（幂等）

        并发调用时只有第一个调用者真正发起启动，其余调用者等待同一个任务。
        启动失败不会被缓存，下一次调用会重新尝试。
        """
        if self._closed:
            raise PoolClosedError("Tab pool is shut down")
        if self._started:
            return

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._start_browser())
        task = self._init_task
        try:
            await asyncio.shield(task)
        finally:
            if self._init_task is task and task.done():
                self._init_task = None

    async def _start_browser(self):
        if self._stale_browser:
            self._stale_browser = False
            self.logger.info("Closing browser left over from the previous generation")
            await self._close_adapter()

        self.echo(f"Starting browser (headless={self.headless}, max_tabs={self.max_tabs})")
        try:
            await self.adapter.start(headless=self.headless)
        except BrowserStartError:
            self.logger.exception("Browser failed to start")
            raise
        except Exception as e:
            self.logger.exception("Browser failed to start")
            raise BrowserStartError(f"Browser initialization failed: {e}") from e

        if self._closed:
            # 启动过程中被 shutdown
            await self._close_adapter()
            raise PoolClosedError("Tab pool was shut down during browser start")

        self._started = True
        self.logger.info("Browser initialized successfully")

    # ==========================================
    # 2. 借出与归还 (Acquire / Release)
    # ==========================================

    async def acquire(self, timeout: Optional[float] = None) -> TabSession:
        """
        借出一个标签页

        顺序：空闲标签页 → 容量未满时新建 → 等待释放。
        等待超过 timeout（默认 acquire_timeout）抛出 PoolExhaustedError。

        Raises:
            PoolExhaustedError: 等待超时
            PoolClosedError: 池已关闭
            BrowserStartError: 浏览器启动失败
        """
        timeout = self.acquire_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            await self.initialize()

            generation = None
            async with self._condition:
                while True:
                    if self._closed:
                        raise PoolClosedError("Tab pool is shut down")
                    if not self._started:
                        # 等待期间浏览器断开了，回到外层重新初始化
                        break

                    session = self._take_idle()
                    if session is not None:
                        self.logger.debug(f"Reusing idle tab {session.tab_id}")
                        return session

                    if len(self._sessions) + self._creating < self.max_tabs:
                        self._creating += 1
                        generation = self._generation
                        break

                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        self.logger.warning(
                            f"Timed out after {timeout}s waiting for a tab "
                            f"({len(self._sessions)}/{self.max_tabs} in use)"
                        )
                        raise PoolExhaustedError(
                            f"Timeout waiting for available tab after {timeout}s",
                            timeout=timeout,
                        )
                    try:
                        await asyncio.wait_for(self._condition.wait(), remaining)
                    except asyncio.TimeoutError:
                        # 下一轮循环先再看一次有没有空闲标签页，再判定超时
                        pass

            if generation is None:
                continue

            session = await self._open_tab(generation)
            if session is not None:
                return session

    def _take_idle(self) -> Optional[TabSession]:
        for session in self._sessions.values():
            if not session.in_use:
                session.in_use = True
                session.last_used_at = time.time()
                return session
        return None

    async def _open_tab(self, generation: int) -> Optional[TabSession]:
        """
        在锁外创建标签页（已经预留了一个容量名额）

        Returns:
            新的 TabSession；如果浏览器在创建期间换代了返回 None，由调用者重试
        """
        try:
            handle = await self.adapter.create_tab()
        except BrowserDisconnectedError:
            await self._cancel_reservation()
            await self.handle_disconnect(generation)
            raise
        except Exception:
            await self._cancel_reservation()
            raise

        async with self._condition:
            self._creating -= 1
            if not self._closed and generation == self._generation:
                session = TabSession(handle=handle, in_use=True, generation=generation)
                self._sessions[session.tab_id] = session
                self.logger.debug(
                    f"Created tab {session.tab_id} ({len(self._sessions)}/{self.max_tabs})"
                )
                return session
            self._condition.notify_all()

        await self._close_handle(handle)
        if self._closed:
            raise PoolClosedError("Tab pool is shut down")
        return None

    async def _cancel_reservation(self):
        async with self._condition:
            self._creating -= 1
            self._condition.notify_all()

    async def release(self, session: Optional[TabSession]):
        """
        归还标签页

        无论调用者的工作是否成功都可以调用；
        池已不认识的标签页（已清理、断线后丢弃）直接忽略。
        """
        if session is None:
            return

        async with self._condition:
            known = self._sessions.get(session.tab_id)
            session.in_use = False
            if known is not session:
                self.logger.debug(f"Release of unknown tab {session.tab_id} ignored")
                return
            session.last_used_at = time.time()
            self._condition.notify_all()

    @asynccontextmanager
    async def lease(self, timeout: Optional[float] = None):
        """
        用法:
            async with pool.lease() as session:
                await adapter.navigate(session.handle, url)
        """
        session = await self.acquire(timeout=timeout)
        try:
            yield session
        finally:
            await self.release(session)

    # ==========================================
    # 3. 清理 (Cleanup / Disconnect / Shutdown)
    # ==========================================

    async def cleanup_idle(self, max_age: float) -> int:
        """
        关闭空闲超过 max_age 秒的标签页，从不触碰使用中的标签页

        Returns:
            关闭的标签页数量
        """
        now = time.time()
        async with self._condition:
            expired = [
                s for s in self._sessions.values()
                if not s.in_use and s.idle_for(now) > max_age
            ]
            for session in expired:
                del self._sessions[session.tab_id]
            if expired:
                self._condition.notify_all()

        for session in expired:
            await self._close_handle(session.handle)

        if expired:
            self.logger.info(f"Closed {len(expired)} idle tab(s) older than {max_age}s")
        return len(expired)

    def start_idle_reaper(self, interval: float, max_age: float):
        """启动后台任务，每 interval 秒清理一次空闲标签页"""
        if self.reaper_running:
            self.logger.warning("Idle reaper is already running")
            return
        self._reaper_task = asyncio.create_task(self._reap_loop(interval, max_age))
        self.logger.info(f"Idle reaper started (interval={interval}s, max_age={max_age}s)")

    async def _reap_loop(self, interval: float, max_age: float):
        while not self._closed:
            await asyncio.sleep(interval)
            try:
                await self.cleanup_idle(max_age)
            except Exception:
                self.logger.exception("Idle tab cleanup failed")

    @property
    def reaper_running(self) -> bool:
        return self._reaper_task is not None and not self._reaper_task.done()

    async def stop_idle_reaper(self):
        task, self._reaper_task = self._reaper_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def handle_disconnect(self, generation: Optional[int] = None):
        """
        浏览器意外断开：丢弃全部标签页记录，回到未初始化状态

        Args:
            generation: 发现断线时的浏览器代数；已经处理过的旧代断线直接忽略
        """
        async with self._condition:
            if generation is not None and generation != self._generation:
                return
            dropped = len(self._sessions)
            self._sessions.clear()
            self._stale_browser = self._stale_browser or self._started
            self._started = False
            self._generation += 1
            self._condition.notify_all()

        self.logger.warning(
            f"Browser disconnected, dropped {dropped} tab(s); next acquire() will restart it"
        )

    @property
    def generation(self) -> int:
        return self._generation

    async def shutdown(self):
        """关闭所有标签页和浏览器，之后的 acquire() 抛出 PoolClosedError"""
        if self._closed:
            return
        self._closed = True
        await self.stop_idle_reaper()

        init_task = self._init_task
        async with self._condition:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            was_started = self._started or self._stale_browser
            self._stale_browser = False
            self._started = False
            self._generation += 1
            self._condition.notify_all()

        if init_task is not None and not init_task.done():
            # 启动中的任务发现 _closed 后会自行关闭浏览器
            await asyncio.gather(init_task, return_exceptions=True)

        for session in sessions:
            await self._close_handle(session.handle)
        if was_started:
            await self._close_adapter()

        self.echo(f"Tab pool shut down ({len(sessions)} tab(s) closed)")

    async def _close_handle(self, handle: TabHandle):
        try:
            await self.adapter.close_tab(handle)
        except Exception:
            self.logger.exception("Error closing tab")

    async def _close_adapter(self):
        try:
            await self.adapter.close()
        except Exception:
            self.logger.exception("Error closing browser")

    # ==========================================
    # 4. 统计 (Stats)
    # ==========================================

    def get_stats(self) -> Dict[str, int]:
        total = len(self._sessions)
        in_use = sum(1 for s in self._sessions.values() if s.in_use)
        return {
            "total": total,
            "in_use": in_use,
            "available": total - in_use,
            "creating": self._creating,
            "max_tabs": self.max_tabs,
        }
