'''
BrowserAdapter 抽象层骨架。

它定义了**调度层（TabPool / PageRenderer）与执行层（具体浏览器库）**之间的契约。
调度层只关心三件事：开/关浏览器、开/关标签页、在标签页里导航并取出链接。
截图、正文提取等 DOM 处理不在这一层。

RawAnchor：

    extract_links 返回页面上所有 <a href> 的原始信息（绝对 href、文本、title）。
    是否站内链接由 PageRenderer 根据页面 hostname 计算，不在浏览器里做判断。

断线：

    当底层浏览器进程退出或调试连接丢失时，实现类必须抛出 BrowserDisconnectedError，
    TabPool 据此丢弃全部标签页记录并回到未初始化状态。
'''
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

# TabHandle: 一个标记，代表浏览器的一个具体标签页。
# 在 DrissionPage 中是 ChromiumTab 对象，在 MockBrowserAdapter 中是 MockTab。
# 调度层不需要知道它具体是什么，只需要拿着它传回给 Adapter。
TabHandle = Any

# RawAnchor: {"href": str, "text": str, "title": str}
RawAnchor = Dict[str, str]

# 站点爬虫需要的唯一提取脚本：所有 a[href] 的绝对地址、文本、title
EXTRACT_LINKS_JS = """
return Array.from(document.querySelectorAll('a[href]')).map(function (a) {
    return {
        href: a.href || '',
        text: (a.textContent || '').trim(),
        title: a.title || ''
    };
});
"""


class BrowserAdapter(ABC):
    """
    浏览器自动化层的统一接口。
    负责屏蔽具体库 (DrissionPage / Mock) 的实现细节。
    """

    # --- Lifecycle (生命周期管理) ---

    @abstractmethod
    async def start(self, headless: bool = True):
        """启动浏览器进程"""
        pass

    @abstractmethod
    async def close(self):
        """关闭浏览器进程并清理资源"""
        pass

    # --- Tab Management (标签页管理) ---

    @abstractmethod
    async def create_tab(self) -> TabHandle:
        """打开一个新的空白标签页，返回句柄"""
        pass

    @abstractmethod
    async def close_tab(self, tab: TabHandle):
        """关闭指定的标签页"""
        pass

    # --- Navigation & Links (导航与链接) ---

    @abstractmethod
    async def navigate(self, tab: TabHandle, url: str, timeout: Optional[float] = None):
        """
        在指定 Tab 访问 URL。
        失败（超时、错误页）抛出 FetchFailedError，断线抛出 BrowserDisconnectedError。
        """
        pass

    @abstractmethod
    async def extract_links(self, tab: TabHandle) -> List[RawAnchor]:
        """返回当前页面所有 a[href] 的原始信息"""
        pass
