"""
TabSpider 自定义异常类

定义了标签页池、浏览器适配器和站点爬虫使用的异常类型。
"""


class TabSpiderError(Exception):
    """所有 TabSpider 异常的基类"""
    pass


# ==========================================
# 1. 标签页池 (Tab Pool)
# ==========================================

class TabPoolError(TabSpiderError):
    """标签页池异常（基类）"""
    pass


class PoolExhaustedError(TabPoolError):
    """标签页池耗尽异常

    当池已满且在超时时间内没有标签页被释放时抛出。
    """

    def __init__(self, message: str, timeout: float = None):
        super().__init__(message)
        self.timeout = timeout


class PoolClosedError(TabPoolError):
    """标签页池已关闭异常

    shutdown() 之后的任何 acquire() 调用都会抛出此异常，
    正在等待的调用者也会被唤醒并收到此异常。
    """
    pass


class BrowserStartError(TabPoolError):
    """浏览器启动失败异常

    初始化失败不会被缓存，下一次 acquire() 会重新尝试启动。
    """
    pass


class BrowserDisconnectedError(TabSpiderError):
    """浏览器连接断开异常

    由适配器在底层浏览器进程意外退出或连接丢失时抛出。
    """
    pass


# ==========================================
# 2. 爬取 (Crawl)
# ==========================================

class CrawlError(TabSpiderError):
    """爬取异常（基类）"""
    pass


class FetchFailedError(CrawlError):
    """单个页面抓取失败

    导航超时、页面报错、链接提取失败等情况。
    在站点爬虫层面会被吞掉并记录，不会中断整个爬取。
    """

    def __init__(self, url: str, message: str):
        super().__init__(f"Failed to fetch {url}: {message}")
        self.url = url
        self.reason = message


class InvalidUrlError(CrawlError):
    """URL 无法解析或不是 http(s) 地址"""

    def __init__(self, url: str, message: str = "Invalid URL provided"):
        super().__init__(f"{message}: {url!r}")
        self.url = url


class RunAbortedError(CrawlError):
    """爬取在启动阶段（或遍历过程中遇到结构性错误）被中止"""
    pass
