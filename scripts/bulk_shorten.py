"""Bulk short-link creation for content items.

Reads a JSON list of CMS items, runs them through the eligibility gate and
the shortener one at a time, prints progress per item and finishes with a
JSON summary. Exits non-zero if any item ended up with an error.

Usage
-----
python scripts/bulk_shorten.py items.json
python scripts/bulk_shorten.py items.json --include-ineligible --delay-ms 500
python scripts/bulk_shorten.py items.json --report     # validation report only

Items look like::

    [{"slug": "hello-world", "title": "Hello", "publishedAt": "2025-10-01T09:00:00Z"}]
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from linkgate.bulk import BulkOrchestrator
from linkgate.dependencies import ServiceManager
from linkgate.models import BulkJob, BulkProgress, ContentItem, ShortenResult
from linkgate.schemas import BulkJobResponse, ValidationReportResponse


def load_items(path: Path) -> list[ContentItem]:
    data = json.loads(path.read_text())
    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of items")
    return [ContentItem.from_mapping(entry) for entry in data if isinstance(entry, dict)]


def print_progress(progress: BulkProgress, key: str, result: ShortenResult) -> None:
    marker = "ok" if result.succeeded else f"fallback ({result.error_reason})"
    print(f"  [{progress.completed}/{progress.total}] {key}: {result.short_url}  {marker}")


def summarize(job: BulkJob) -> dict[str, Any]:
    return BulkJobResponse.from_job(job).model_dump(mode="json", by_alias=True, exclude_none=True)


async def run(args: argparse.Namespace, services: ServiceManager | None = None) -> int:
    services = services or ServiceManager()
    try:
        items = load_items(Path(args.items))

        if args.report:
            report = services.validator.build_report(items)
            print(json.dumps(ValidationReportResponse.from_report(report).model_dump(mode="json", by_alias=True), indent=2))
            return 0

        orchestrator = services.bulk
        if args.delay_ms is not None:
            orchestrator = BulkOrchestrator(
                services.shortener,
                services.validator,
                delay_ms=args.delay_ms,
                max_size=services.settings.BULK_MAX_SIZE,
            )

        print(f"\n=== Bulk shorten: {len(items)} items ===")
        job = await orchestrator.run_batch(
            items,
            include_ineligible=args.include_ineligible,
            force=args.force,
            on_progress=print_progress,
        )
        print(json.dumps(summarize(job), indent=2))
        return 1 if job.errors else 0
    finally:
        await services.cleanup()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create short links for a batch of content items")
    parser.add_argument("items", help="Path to a JSON file with a list of items")
    parser.add_argument("--include-ineligible", action="store_true", help="Also shorten legacy items")
    parser.add_argument("--force", action="store_true", help="Ignore the eligibility cutoff date")
    parser.add_argument("--delay-ms", type=int, default=None, help="Pause between items (default BULK_DELAY_MS)")
    parser.add_argument("--report", action="store_true", help="Print the validation report and exit")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
