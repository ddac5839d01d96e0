"""
Command-line entry point for the listings scraper.
"""
import argparse
import asyncio
import os
import sys

from .config import config
from .errors import InvalidRegionError
from .export import save_output_rows
from .search import SearchParams, available_categories, run_detail, run_search
from .utils import init_logger, now_iso

LEVEL_CHOICES = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Classified-listings scraper with retrying fetches and CSV/XLSX/JSON export")
    ap.add_argument("--query", type=str, default="", help="Query, e.g. 'road bike'")
    ap.add_argument("--category", type=str, default=config.DEFAULT_CATEGORY, help="Category code (default sss)")
    ap.add_argument("--subcategory", type=str, default="", help="Subcategory path segment")
    ap.add_argument("--region", action="append", dest="regions", default=None,
                    help=f"Region/site code; repeat for several (default {config.DEFAULT_REGION})")
    ap.add_argument("--min-price", type=float, default=None, help="Minimum price")
    ap.add_argument("--max-price", type=float, default=None, help="Maximum price")
    ap.add_argument("--limit", type=int, default=100, help="Maximum listings to return (0 for no limit)")
    ap.add_argument("--details", action="store_true", help="Collect details from each posting page")
    ap.add_argument("--browser", action="store_true", help="Fetch pages with headless Chromium")
    ap.add_argument("--paginate", action="store_true", help="Walk every estimated result page")
    ap.add_argument("--max-pages", type=int, default=config.MAX_PAGES, help="Page cap for --paginate")
    ap.add_argument("--detail-url", action="append", default=None,
                    help="Fetch a single posting instead of searching; may be repeated")
    ap.add_argument("--list-categories", action="store_true", help="Print known category codes and exit")
    ap.add_argument("--out", type=str, default="listings_export.csv", help="CSV/XLSX/JSON file to export")
    # Logging
    ap.add_argument("--log-level", choices=LEVEL_CHOICES, default=None,
                    help="Global log level for both console and file (overrides --log-console/--log-file).")
    ap.add_argument("--log-console", choices=LEVEL_CHOICES, default=os.getenv("LOG_CONSOLE", config.LOG_LEVEL.upper()),
                    help="Console log level (default from env LOG_CONSOLE or LOG_LEVEL).")
    ap.add_argument("--log-file", choices=LEVEL_CHOICES, default=os.getenv("LOG_FILE", "DEBUG"),
                    help="File log level (default from env LOG_FILE or DEBUG).")
    ap.add_argument("--log-file-path", default=os.getenv("LOG_FILE_PATH", "clscraper.log"),
                    help="Path to log file (default from env LOG_FILE_PATH or clscraper.log).")
    ap.add_argument("--no-file-log", action="store_true",
                    help="Disable file logging (only console output).")

    return ap.parse_args(argv)


def params_from_args(args) -> SearchParams:
    return SearchParams(
        query=args.query.strip(),
        category=args.category,
        regions=args.regions or [config.DEFAULT_REGION],
        subcategory=args.subcategory,
        min_price=args.min_price,
        max_price=args.max_price,
        limit=args.limit,
        include_details=args.details,
        use_browser=args.browser,
        max_pages=args.max_pages,
    )


def main(argv=None):
    args = parse_args(argv)

    if args.list_categories:
        for c in available_categories():
            print(f"{c['code']}\t{c['name']}")
        return 0

    eff_console = args.log_level or args.log_console
    eff_file = args.log_level or args.log_file
    logger = init_logger(
        console_level=eff_console,
        file_level=eff_file,
        log_file=None if args.no_file_log else args.log_file_path
    )
    logger.info(
        f"Logger initialized: console={eff_console}, "
        f"file={'DISABLED' if args.no_file_log else eff_file}, "
        f"path={'N/A' if args.no_file_log else args.log_file_path}"
    )
    config.validate()
    logger.info(f">>> Run started at {now_iso()}")

    if args.detail_url:
        listings = asyncio.run(run_detail(args.detail_url, use_browser=args.browser))
    else:
        params = params_from_args(args)
        try:
            listings = asyncio.run(run_search(params, paginate=args.paginate))
        except InvalidRegionError as exc:
            logger.error(str(exc))
            return 2

    logger.info(f">>> Collected {len(listings)} listings")
    save_output_rows(listings, args.out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
