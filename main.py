"""
Command-line entrypoint: run the job-board crawl and export its records.

This module wires up:
- Argument parsing (run input file and/or flags, storage, logging destination).
- Structured logging configuration with a 'scraper' attribute on each record.
- A simple lifecycle: build config -> instantiate scraper -> run() -> export().

The registry of available scrapers is imported from `scrapers.SCRAPER_REGISTRY`.
"""

from __future__ import annotations

import argparse
import logging

from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from scrapers import SCRAPER_REGISTRY
from scrapers.base import JobScraper
from utils.errors import ConfigError, ExtractionError
from utils.input_config import (
    EMPTY_FIRST_PAGE_POLICIES,
    POSTED_DATE_CHOICES,
    RunConfig,
    config_from_input,
    load_input,
)
from utils.sink import Dataset
from utils.state import STATE_KEY, StateStore


class ScraperField(logging.Filter):
    """
    Logging filter that guarantees a 'scraper' attribute on log records.

    This lets the formatter include '%(scraper)s' safely even for log
    messages emitted outside scraper adapters (e.g., third-party libs).
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "scraper"):
            record.scraper = ""
        return True


def configure_logging(
    logfile: Optional[str], suppress_console: bool, level: int = logging.INFO
) -> None:
    """
    Configure root logging with optional file/console handlers and a uniform format.

    Args:
        logfile: Path to a log file. If provided, logs are written here.
        suppress_console: If True, do not attach a console (stderr) handler.
        level: Root log level.

    Raises:
        OSError: If the logfile cannot be opened/created by the FileHandler.
    """
    handlers: list[logging.Handler] = []
    if logfile:
        Path(logfile).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(logfile))
    if not suppress_console:
        handlers.append(logging.StreamHandler())
    if not handlers:
        handlers.append(logging.NullHandler())

    fmt = "%(asctime)s [%(levelname)s] %(scraper)s %(message)s"
    formatter = logging.Formatter(fmt)

    root = logging.getLogger()
    root.handlers = []
    root.setLevel(level)

    filt = ScraperField()
    for h in handlers:
        h.setFormatter(formatter)
        h.addFilter(filt)
        root.addHandler(h)

    # Quiet down verbose third-party libraries unless debugging.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_input(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Merge the optional JSON input file with CLI flags (flags win).

    Returns:
        Actor-style input dict (camelCase keys) for `config_from_input`.
    """
    doc: Dict[str, Any] = load_input(args.input) if args.input else {}
    overrides = {
        "startUrl": args.start_url,
        "keyword": args.keyword,
        "location": args.location,
        "postedDate": args.posted_date,
        "maxJobs": args.max_jobs,
        "maxPages": args.max_pages,
        "cookies": args.cookies,
        "maxConcurrency": args.max_concurrency,
        "maxRequestRetries": args.max_retries,
        "requestTimeoutSecs": args.timeout,
        "emptyFirstPage": args.empty_first_page,
    }
    doc.update({k: v for k, v in overrides.items() if v is not None})
    if args.no_details:
        doc["collectDetails"] = False
    if args.proxy:
        doc["proxyConfiguration"] = {"proxyUrls": list(args.proxy)}
    return doc


def run_scraper(
    scraper_name: str,
    config: RunConfig,
    *,
    storage_dir: Path,
    reset_state: bool = False,
    export_csv: Optional[Path] = None,
) -> JobScraper:
    """
    Run one scraper end-to-end and optionally export its records.

    Raises:
        KeyError: If the scraper name is not present in the registry.
        ConfigError: If no start request can be built.
        ExtractionError: See `JobScraper.run`.
    """
    logger = logging.getLogger(__name__)
    logger.info("run:start", extra={"scraper": scraper_name})

    scraper_class = SCRAPER_REGISTRY[scraper_name]
    store = StateStore(storage_dir)
    if reset_state:
        store.save(STATE_KEY, {"pagesScraped": 0, "jobsScraped": 0, "seenJobIds": []})
    scraper = scraper_class(config, store=store, dataset=Dataset(storage_dir))
    scraper.run()

    if export_csv is not None:
        scraper.export(str(export_csv))

    logger.info("run:finish", extra={"scraper": scraper_name})
    return scraper


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Harvest job listings from a job board.")
    parser.add_argument(
        "--scraper",
        choices=sorted(SCRAPER_REGISTRY.keys()),
        default="gulftalent",
        help="Which site scraper to run (default: gulftalent).",
    )
    parser.add_argument("--input", type=str, default=None, help="Path to a JSON run input file.")
    parser.add_argument("--start-url", type=str, default=None, help="Search results URL to start from.")
    parser.add_argument("--keyword", type=str, default=None, help="Search keyword.")
    parser.add_argument("--location", type=str, default=None, help="City name or city filter id.")
    parser.add_argument(
        "--posted-date",
        choices=POSTED_DATE_CHOICES,
        default=None,
        help="Only jobs posted within this window.",
    )
    parser.add_argument(
        "--no-details",
        action="store_true",
        help="Emit listing data only; do not visit detail pages.",
    )
    parser.add_argument("--max-jobs", type=int, default=None, help="Stop after this many jobs.")
    parser.add_argument("--max-pages", type=int, default=None, help="Stop after this many list pages.")
    parser.add_argument("--cookies", type=str, default=None, help="Cookie header value sent with every request.")
    parser.add_argument(
        "--proxy",
        action="append",
        default=None,
        help="Proxy URL; repeat to rotate between several.",
    )
    parser.add_argument("--max-concurrency", type=int, default=None, help="Worker pool size (default: 5).")
    parser.add_argument("--max-retries", type=int, default=None, help="Retries for blocked/failed requests (default: 3).")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds (default: 30).")
    parser.add_argument(
        "--empty-first-page",
        choices=EMPTY_FIRST_PAGE_POLICIES,
        default=None,
        help='What to do when page 1 yields no jobs: "warn" (default) or "error".',
    )
    parser.add_argument(
        "--storage-dir",
        type=str,
        default="storage",
        help="Directory for crawl state and the dataset (default: storage).",
    )
    parser.add_argument(
        "--reset-state",
        action="store_true",
        help="Forget persisted counters and seen job ids before running.",
    )
    parser.add_argument("--export-csv", type=str, default=None, help="Also write this run's records to CSV.")
    parser.add_argument("--logfile", type=str, default=None, help="Path to log file.")
    parser.add_argument("--suppress", action="store_true", help="Suppress console logging.")
    parser.add_argument("--debug", action="store_true", help="Verbose logging.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Program entrypoint: configure logging, parse args, and run the scraper.

    Returns:
        Process exit code: 0 on success, 2 on configuration errors, 1 when
        the run ended with a structural extraction failure.
    """
    args = parse_args(argv)
    configure_logging(
        args.logfile, args.suppress, logging.DEBUG if args.debug else logging.INFO
    )
    logger = logging.getLogger(__name__)

    try:
        config = config_from_input(build_input(args))
    except ConfigError as e:
        logger.error(f"config:invalid error={e}")
        return 2

    try:
        run_scraper(
            args.scraper,
            config,
            storage_dir=Path(args.storage_dir),
            reset_state=args.reset_state,
            export_csv=Path(args.export_csv) if args.export_csv else None,
        )
    except ConfigError as e:
        logger.error(f"config:invalid error={e}")
        return 2
    except ExtractionError as e:
        logger.error(f"run:failed error={e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
