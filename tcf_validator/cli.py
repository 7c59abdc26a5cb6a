"""CLI entry point and run orchestration."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from playwright.async_api import Error as PlaywrightError, async_playwright

from .config import load_config
from .db import ResultStore
from .engine import validate_sites
from .models import SiteValidationResult, ValidationRun
from .report import (
    format_change,
    format_result_line,
    print_summary,
    results_filename,
    write_csv,
)
from .utils import extract_registered_domain, normalize_url, now_iso

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tcf_validator",
        description="TCF vendor consent validator: checks that CMPs pass consent to a vendor",
    )
    parser.add_argument(
        "vendor_id", nargs="?", default=None,
        help="IAB TCF vendor ID to check (default: vendor_id from config)",
    )
    parser.add_argument(
        "site_list", nargs="?", default=None,
        help="Site list file, one domain or URL per line (default: site_list from config)",
    )
    parser.add_argument(
        "--config", type=str, default="config.yaml",
        help="Path to config.yaml (default: ./config.yaml)",
    )
    parser.add_argument(
        "--siteList", "--site-list", dest="site_list_opt", type=str, default=None,
        help="Site list file (same as the positional argument)",
    )
    parser.add_argument(
        "--headed", "--headfull", action="store_true",
        help="Run with a visible browser window",
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Override directory for CSV results",
    )
    parser.add_argument(
        "--db", type=str, default=None,
        help="Also store results in this SQLite database",
    )
    parser.add_argument(
        "--limit", type=_positive_int, default=None,
        help="Only validate first N sites (for testing)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser.parse_args(argv)


def parse_vendor_id(value) -> int | None:
    """Return the vendor id as a positive int, or None if it is not one."""
    try:
        vendor_id = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return vendor_id if vendor_id > 0 else None


def load_site_list(path: Path) -> list[str]:
    """Load sites from a text file: one bare domain or URL per line."""
    sites: list[str] = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            entry = line.strip()
            if not entry or entry.startswith("#"):
                continue
            url = normalize_url(entry)
            if "." not in extract_registered_domain(url):
                logger.warning("Site list entry %r has no registrable domain", entry)
            sites.append(url)
    return sites


async def save_history(store: ResultStore, run: ValidationRun) -> list[str]:
    """Store a finished run and list the sites whose vendor presence flipped."""
    changes: list[str] = []
    run_id = await store.start_run(run.vendor_id, run.started_at)
    for result in run.results:
        previous = await store.last_result(result.site, run.vendor_id)
        change = format_change(previous, result)
        if change:
            changes.append(change)
        await store.save_result(run_id, result)
    await store.finish_run(run_id, run)
    logger.info("Saved run %d to %s", run_id, store.db_path)
    return changes


async def main(args: argparse.Namespace) -> None:
    """Main validation run."""
    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy loggers
    logging.getLogger("playwright").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    # Load config
    config_path = Path(args.config).resolve()
    config = load_config(config_path)

    if args.headed:
        config.headless = False
    if args.output_dir:
        config.output.results_dir = args.output_dir
    if args.db:
        config.output.database_path = args.db

    # A lone non-numeric positional is the site list: `tcf_validator sites.txt`
    vendor_arg, site_list_arg = args.vendor_id, args.site_list_opt or args.site_list
    if vendor_arg is not None and site_list_arg is None and not vendor_arg.strip().lstrip("-").isdigit():
        vendor_arg, site_list_arg = None, vendor_arg

    vendor_id = parse_vendor_id(vendor_arg if vendor_arg is not None else config.vendor_id)
    if vendor_id is None:
        logger.error("Vendor ID must be a positive integer greater than 0.")
        sys.exit(1)

    if site_list_arg:
        sites_path = Path(site_list_arg).resolve()
    else:
        sites_path = config.resolve_path(config.site_list)
    if not sites_path.exists():
        logger.error("Site list file not found: %s", sites_path)
        sys.exit(1)

    sites = load_site_list(sites_path)
    if args.limit:
        sites = sites[: args.limit]
    if not sites:
        logger.error("Site list is empty: %s", sites_path)
        sys.exit(1)

    logger.info("Starting TCF vendor consent validation for vendor %d", vendor_id)
    logger.info("Using site list: %s (%d sites)", sites_path, len(sites))
    logger.info("Browser mode: %s", "headless" if config.headless else "headed")

    total = len(sites)
    run_start = time.monotonic()

    def on_result(index: int, result: SiteValidationResult) -> None:
        print(format_result_line(index, total, result))

    async with async_playwright() as pw:
        try:
            browser = await pw.chromium.launch(
                headless=config.headless,
                args=config.browser.launch_args,
            )
        except PlaywrightError as e:
            logger.error("Could not launch browser: %s", e)
            sys.exit(1)

        try:
            run = await validate_sites(browser, sites, vendor_id, config, on_result)
        finally:
            await browser.close()

    results_dir = config.resolve_path(config.output.results_dir)
    csv_path = write_csv(run, results_dir / results_filename(vendor_id, now_iso()))

    history = None
    changes: list[str] = []
    if config.output.database_path:
        store = ResultStore(config.resolve_path(config.output.database_path))
        await store.connect()
        try:
            changes = await save_history(store, run)
            history = await store.get_stats(vendor_id)
        finally:
            await store.close()

    print_summary(run, csv_path, history, changes)
    logger.info("Processed %d sites in %.1fs", total, time.monotonic() - run_start)
