"""
Rescan stored leads and compare them with fresh extractions.

Usage:
    cardlead-rescan leads.json [--dry-run] [--max-images 2] [--limit N]

For every full-scan lead with images, the card images are re-extracted,
a stored-vs-extracted table is printed, and each phone number missing from
the store is offered for adding (ENTER to add, 's' to skip). Nothing is
written without an explicit accept, and nothing at all with --dry-run.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from config import get_config

from .drift import DriftDetector
from .pipeline import CardScanPipeline
from .schema import DiffStatus, FieldDiffRow
from .store import JsonRecordStore, RecordStore, StoredLead

logger = logging.getLogger(__name__)

RULE = "=" * 80

STATUS_LABELS = {
    DiffStatus.MATCH: "match",
    DiffStatus.DIFFERENT: "DIFFERENT",
    DiffStatus.MISSING_IN_STORE: "MISSING IN STORE",
    DiffStatus.ONLY_IN_STORE: "only in store",
    DiffStatus.BOTH_EMPTY: "-",
}


@dataclass
class RescanSummary:
    total_leads: int = 0
    rescanned: int = 0
    failed: int = 0
    leads_with_differences: int = 0
    fields_missing_in_store: int = 0
    fields_different: int = 0
    phones_added: int = 0

    def lines(self) -> List[str]:
        return [
            f"Total leads with images:     {self.total_leads}",
            f"Successfully rescanned:      {self.rescanned}",
            f"Failed to scan:              {self.failed}",
            f"Leads with differences:      {self.leads_with_differences}",
            f"Total fields missing:        {self.fields_missing_in_store}",
            f"Total fields different:      {self.fields_different}",
            f"Phone numbers added:         {self.phones_added}",
        ]


def format_table(rows: Sequence[FieldDiffRow]) -> List[str]:
    """Render diff rows as aligned text lines."""
    headers = ("Field", "Stored Value", "Scanned Value", "Status")
    cells = [
        (row.field, row.stored_value or "(empty)", row.extracted_value or "(empty)", STATUS_LABELS[row.status])
        for row in rows
    ]
    widths = [
        max([len(headers[i])] + [len(c[i]) for c in cells])
        for i in range(len(headers))
    ]

    def fmt(values) -> str:
        return "  " + " | ".join(v.ljust(w) for v, w in zip(values, widths))

    lines = [fmt(headers), "  " + "-" * (sum(widths) + 3 * (len(widths) - 1))]
    lines.extend(fmt(c) for c in cells)
    return lines


def confirm_phones(
    phones: Sequence[str],
    prompt: Callable[[str], str] = input,
    echo: Callable[[str], None] = print
) -> List[str]:
    """Ask about each phone: ENTER accepts, 's' skips."""
    accepted = []
    for index, phone in enumerate(phones, start=1):
        answer = prompt(f"  [{index}/{len(phones)}] {phone} - Press ENTER to add, or 's' to skip: ")
        if answer.strip().lower() == "s":
            echo("    Skipped")
        else:
            accepted.append(phone)
            echo("    Queued for adding")
    return accepted


def rescan_leads(
    store: RecordStore,
    detector: DriftDetector,
    dry_run: bool = False,
    limit: Optional[int] = None,
    prompt: Callable[[str], str] = input,
    echo: Callable[[str], None] = print
) -> RescanSummary:
    """
    Run the rescan workflow over every lead in a store.

    Args:
        store: Lead store to read from (and append phones to)
        detector: DriftDetector wired to an extraction router
        dry_run: Report only; never prompt or write
        limit: Stop after this many leads
        prompt: Input function for confirmations
        echo: Output function

    Returns:
        RescanSummary with the run totals
    """
    summary = RescanSummary()
    leads: List[StoredLead] = list(store.iter_leads())
    if limit is not None:
        leads = leads[:limit]
    summary.total_leads = len(leads)
    echo(f"Found {len(leads)} lead(s) with images to rescan")

    for position, lead in enumerate(leads, start=1):
        echo("")
        echo(RULE)
        echo(f"Lead {position}/{len(leads)} | ID: {lead.lead_id}")
        echo(f"Name: {lead.display_name}")
        echo(f"Images: {min(len(lead.images), detector.max_images)} to scan")
        echo(RULE)

        report = detector.rescan(lead)
        if report.all_failed:
            echo("  All scans failed for this lead")
            summary.failed += 1
            continue

        summary.rescanned += 1
        echo("")
        echo("  Comparison:")
        for line in format_table(report.rows):
            echo(line)

        missing = report.rows_with_status(DiffStatus.MISSING_IN_STORE)
        different = report.rows_with_status(DiffStatus.DIFFERENT)
        if report.has_differences:
            summary.leads_with_differences += 1
            summary.fields_missing_in_store += len(missing)
            summary.fields_different += len(different)

        if not report.missing_phones:
            echo("  No missing phone numbers")
            continue

        echo(f"  {len(report.missing_phones)} phone number(s) found in scan but not in store:")
        echo(f"  Stored:  [{', '.join(lead.phone_numbers)}]")
        echo(f"  Scanned: [{', '.join(report.record.phone_numbers)}]")
        echo(f"  Missing: [{', '.join(report.missing_phones)}]")

        if dry_run:
            echo("  Dry run: not adding phone numbers")
            continue

        to_add = confirm_phones(report.missing_phones, prompt=prompt, echo=echo)
        if to_add:
            updated = store.append_phone_numbers(lead.lead_id, to_add)
            summary.phones_added += len(to_add)
            echo(f"  Added {len(to_add)} phone number(s): [{', '.join(updated)}]")
        else:
            echo("  No phones added for this lead")

    echo("")
    echo(RULE)
    echo("SUMMARY")
    echo(RULE)
    for line in summary.lines():
        echo(line)
    return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cardlead-rescan",
        description="Re-scan stored lead card images and compare with stored details.",
    )
    parser.add_argument("store", help="Path to the JSON lead store")
    parser.add_argument("--dry-run", action="store_true", help="Report differences without writing")
    parser.add_argument("--max-images", type=int, help="Images to scan per lead (default from config)")
    parser.add_argument("--limit", type=int, help="Only process the first N leads")
    parser.add_argument("--env", help="Config name: development, production or testing")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = get_config(args.env)
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format=config.LOG_FORMAT
    )

    pipeline = CardScanPipeline(config)
    if not pipeline.router.configured_providers():
        logger.error("No extraction provider configured. Set OPENAI_API_KEY or GEMINI_API_KEY.")
        return 2

    detector = pipeline.drift_detector
    if args.max_images:
        detector.max_images = args.max_images

    try:
        rescan_leads(JsonRecordStore(args.store), detector, dry_run=args.dry_run, limit=args.limit)
    except FileNotFoundError:
        logger.error(f"Lead store not found: {args.store}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
