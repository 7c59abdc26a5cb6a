"""CSV export and console output for validation runs."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Sequence

from .models import SiteValidationResult, ValidationRun, ValidationStatus
from .utils import clean_error

CSV_HEADERS = ["Site", "Vendor ID", "Has TCF", "CMP ID", "Vendor Found", "Timestamp", "Error"]

NOT_AVAILABLE = "N/A"


def _render(value) -> str:
    # None means "never determined" and must not read as false
    if value is None:
        return NOT_AVAILABLE
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def result_row(result: SiteValidationResult) -> list[str]:
    return [
        result.site,
        str(result.vendor_id),
        _render(result.has_tcf),
        _render(result.cmp_id),
        _render(result.vendor_is_present),
        _render(result.timestamp),
        clean_error(result.error) if result.error else NOT_AVAILABLE,
    ]


def write_csv(run: ValidationRun, path: str | Path) -> Path:
    """Write one quoted, semicolon-separated row per site."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, delimiter=";", quoting=csv.QUOTE_ALL)
        writer.writerow(CSV_HEADERS)
        writer.writerows(result_row(r) for r in run.results)
    return path


def results_filename(vendor_id: int, timestamp: str) -> str:
    safe = timestamp.replace(":", "-").replace(".", "-").replace("+", "-")
    return f"validation-{vendor_id}-{safe}.csv"


def _presence_label(result: SiteValidationResult) -> str:
    return "FOUND" if result.vendor_is_present else "ABSENT"


def format_result_line(index: int, total: int, result: SiteValidationResult) -> str:
    status = result.status
    if status == ValidationStatus.FAILED:
        label = "FAILED"
    elif status == ValidationStatus.NO_TCF:
        label = "NO-TCF"
    else:
        label = _presence_label(result)
    cmp = result.cmp_id if result.cmp_id is not None else "-"
    line = f"[{index + 1:>4}/{total}] {label:<7} {result.site:<40} CMP:{cmp}"
    if result.error:
        line += f" | {clean_error(result.error)[:120]}"
    return line


def format_change(previous: SiteValidationResult | None, current: SiteValidationResult) -> str | None:
    """Describe a vendor presence flip against the previous stored result."""
    if previous is None:
        return None
    if previous.vendor_is_present is None or current.vendor_is_present is None:
        return None
    if previous.vendor_is_present == current.vendor_is_present:
        return None
    return (
        f"{current.site}: {_presence_label(previous)} -> {_presence_label(current)}"
        f" (since {previous.timestamp})"
    )


def print_summary(
    run: ValidationRun,
    csv_path: Path | None = None,
    history: dict | None = None,
    changes: Sequence[str] = (),
) -> None:
    total = len(run.results)
    print("\n" + "=" * 70)
    print("VALIDATION COMPLETE")
    print("=" * 70)
    print(f"  Vendor ID:          {run.vendor_id}")
    print(f"  Sites:              {total}")
    print(f"  Vendor found:       {run.vendor_found}")
    print(f"  Without TCF:        {run.without_tcf}")
    print(f"  Failed:             {run.failed}")
    if csv_path:
        print(f"  Results:            {csv_path}")
    if history is not None:
        print(f"  Stored runs:        {history.get('total_runs', 0):,}")
        print(f"  Stored results:     {history.get('total_results', 0):,}"
              f" ({history.get('failed', 0):,} failed)")
    if changes:
        print(f"  Changed since last run ({len(changes)}):")
        for change in changes:
            print(f"    {change}")
    print("=" * 70)
