# cli_runner.py
import argparse
import asyncio
import json
import signal
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from slugify import slugify

from .backends.mock_browser import MockBrowserAdapter
from .core.loader import CrawlOptions, load_config
from .core.log_config import LogConfig
from .core.log_util import LogFactory
from .core.page_renderer import PageRenderer
from .skills.site_crawler import CrawlResult, SiteCrawler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tabspider",
        description="Breadth-first crawl of a site through a pool of headless browser tabs; writes the link map as JSON.",
    )
    parser.add_argument("start_url", help="Start URL (e.g. https://example.com/)")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--max-depth", type=int, help="Maximum traversal depth (default: 3)")
    parser.add_argument("--max-pages", type=int, help="Maximum pages to dispatch (default: 100)")
    parser.add_argument("--any-domain", action="store_true", help="Follow links to other hostnames")
    parser.add_argument("--exclude", action="append", metavar="SUBSTRING",
                        help="Exclude URLs containing SUBSTRING (repeatable, replaces the defaults)")
    parser.add_argument("--include", action="append", metavar="SUBSTRING",
                        help="Only follow URLs containing SUBSTRING (repeatable)")
    parser.add_argument("--delay", type=int, help="Delay between depth levels in milliseconds (default: 1000)")
    parser.add_argument("--max-tabs", type=int, help="Maximum concurrent browser tabs (default: 10)")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")
    parser.add_argument("--mock-site", metavar="FILE",
                        help="Crawl an in-memory site graph from a YAML/JSON file instead of a real browser")
    parser.add_argument("--log-dir", help="Directory for log files (default: ./logs)")
    parser.add_argument("--out", help="Output file path, or '-' for stdout (default: crawls/<host>_<time>.json)")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    return parser


def build_options(args: argparse.Namespace, defaults: CrawlOptions) -> CrawlOptions:
    overrides = {
        "max_depth": args.max_depth,
        "max_pages": args.max_pages,
        "exclude_patterns": args.exclude,
        "include_patterns": args.include,
        "delay": args.delay,
    }
    if args.any_domain:
        overrides["same_domain"] = False
    return replace(defaults, **{k: v for k, v in overrides.items() if v is not None})


def generate_output_path(start_url: str, out_dir: str = "crawls") -> Path:
    """crawls/{hostname}_{datetime}.json"""
    hostname = urlparse(start_url).hostname or "unknown"
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Path(out_dir) / f"{slugify(hostname, separator='_')}_{timestamp}.json"


def build_payload(result: CrawlResult, crawler: SiteCrawler) -> dict:
    stats = crawler.get_stats()
    stats["unique_domains"] = sorted(stats["unique_domains"])
    return {"result": result.to_dict(), "stats": stats}


def print_summary(result: CrawlResult, crawler: SiteCrawler):
    stats = crawler.get_stats()
    lines = [
        "=" * 50,
        "CRAWL SUMMARY",
        "=" * 50,
        f"Start URL:          {result.base_url}",
        f"Pages recorded:     {result.total_pages}",
        f"Links found:        {result.total_links}",
        f"URLs visited:       {stats['visited_urls']}",
        f"Failed pages:       {len(result.failures)}",
    ]
    if not result.success:
        lines.append(f"Error:              {result.error}")
    sys.stderr.write("\n".join(lines) + "\n")


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if args.max_tabs:
        config.max_tabs = args.max_tabs
    if args.headful:
        config.headless = False

    LogFactory.set_log_dir(args.log_dir or config.log_dir)
    LogFactory.set_level(LogConfig.parse_level(config.log_level))

    adapter = MockBrowserAdapter.from_file(args.mock_site) if args.mock_site else None
    renderer = PageRenderer(adapter=adapter, config=config)
    crawler = SiteCrawler(renderer)
    options = build_options(args, config.crawl)

    # SIGINT / SIGTERM 取消主任务，finally 里关闭浏览器
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, main_task.cancel)
        except (NotImplementedError, RuntimeError):
            # Windows 事件循环不支持 add_signal_handler
            pass

    try:
        result = await crawler.crawl(args.start_url, options)
    except asyncio.CancelledError:
        sys.stderr.write("\nReceived shutdown signal, closing browser...\n")
        return 130
    finally:
        await renderer.close()

    print_summary(result, crawler)

    payload = build_payload(result, crawler)
    json_text = json.dumps(payload, ensure_ascii=False, indent=2 if args.pretty else None)
    if args.out == "-":
        print(json_text)
    else:
        output_path = Path(args.out) if args.out else generate_output_path(result.base_url)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_text, encoding="utf-8")
        sys.stderr.write(f"Results written to: {output_path}\n")

    return 0 if result.success else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
