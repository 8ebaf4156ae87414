"""
Duplicate/drift detection between stored leads and fresh extractions.

Used offline to audit stored leads: re-scan their card images, diff the
result against what is stored and surface phone numbers the store is
missing. Nothing here writes to the store.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .images import download_image_as_base64
from .merger import merge
from .schema import ContactRecord, DiffStatus, ExtractionMethod, FieldDiffRow
from .store import StoredLead

logger = logging.getLogger(__name__)

COMPARE_FIELDS = (
    "firstName",
    "lastName",
    "company",
    "position",
    "emails",
    "phoneNumbers",
    "website",
    "address",
    "city",
    "zipcode",
    "country",
)

MAX_IMAGES_PER_LEAD = 2

Details = Union[ContactRecord, Dict[str, Any], None]


def _field_value(details: Details, wire_name: str) -> Any:
    if details is None:
        return ""
    return details.get(wire_name)


def _as_text(value: Any, sort: bool = False) -> str:
    if isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value if v is not None and str(v).strip()]
        if sort:
            items = sorted(items, key=str.lower)
        return ", ".join(items)
    if value is None:
        return ""
    return str(value).strip()


def diff(stored: Details, extracted: Details) -> List[FieldDiffRow]:
    """
    Compare stored details against freshly extracted ones, field by field.

    Args:
        stored: Stored details (wire-format dict or ContactRecord)
        extracted: Extracted details (wire-format dict or ContactRecord)

    Returns:
        One FieldDiffRow per COMPARE_FIELDS entry, in that order
    """
    rows = []
    for wire_name in COMPARE_FIELDS:
        stored_value = _field_value(stored, wire_name)
        extracted_value = _field_value(extracted, wire_name)

        stored_key = _as_text(stored_value, sort=True).lower()
        extracted_key = _as_text(extracted_value, sort=True).lower()

        if not stored_key and not extracted_key:
            status = DiffStatus.BOTH_EMPTY
        elif not stored_key:
            status = DiffStatus.MISSING_IN_STORE
        elif not extracted_key:
            status = DiffStatus.ONLY_IN_STORE
        elif stored_key == extracted_key:
            status = DiffStatus.MATCH
        else:
            status = DiffStatus.DIFFERENT

        rows.append(FieldDiffRow(
            field=wire_name,
            stored_value=_as_text(stored_value),
            extracted_value=_as_text(extracted_value),
            status=status,
        ))
    return rows


def normalize_phone_for_compare(phone: str) -> str:
    """Drop spaces, dashes, parentheses and dots."""
    return re.sub(r"[\s\-().]", "", "" if phone is None else str(phone))


def compare_phone_numbers(stored_phones: Sequence[str], extracted_phones: Sequence[str]) -> List[FieldDiffRow]:
    """
    Check each extracted phone against the stored ones.

    Returns:
        One row per extracted phone: match if already stored, else missing_in_store
    """
    stored_keys = {normalize_phone_for_compare(p) for p in stored_phones or []}
    stored_display = ", ".join(str(p) for p in stored_phones or [])

    rows = []
    for phone in extracted_phones or []:
        present = normalize_phone_for_compare(phone) in stored_keys
        rows.append(FieldDiffRow(
            field="phoneNumbers",
            stored_value=phone if present else stored_display,
            extracted_value=phone,
            status=DiffStatus.MATCH if present else DiffStatus.MISSING_IN_STORE,
        ))
    return rows


def find_missing_phone_numbers(stored_phones: Sequence[str], extracted_phones: Sequence[str]) -> List[str]:
    """Extracted phones not present in the store (digit-normalized comparison)."""
    return [
        row.extracted_value
        for row in compare_phone_numbers(stored_phones, extracted_phones)
        if row.status is DiffStatus.MISSING_IN_STORE
    ]


@dataclass
class RescanReport:
    """Result of re-scanning one stored lead."""
    lead_id: str
    record: Optional[ContactRecord] = None
    rows: List[FieldDiffRow] = field(default_factory=list)
    phone_rows: List[FieldDiffRow] = field(default_factory=list)
    missing_phones: List[str] = field(default_factory=list)
    images_scanned: int = 0
    images_failed: int = 0

    @property
    def all_failed(self) -> bool:
        return self.record is None

    def rows_with_status(self, status: DiffStatus) -> List[FieldDiffRow]:
        return [row for row in self.rows if row.status is status]

    @property
    def has_differences(self) -> bool:
        return bool(
            self.rows_with_status(DiffStatus.MISSING_IN_STORE)
            or self.rows_with_status(DiffStatus.DIFFERENT)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leadId": self.lead_id,
            "details": self.record.to_dict() if self.record else None,
            "rows": [row.to_dict() for row in self.rows],
            "phoneRows": [row.to_dict() for row in self.phone_rows],
            "missingPhones": list(self.missing_phones),
            "imagesScanned": self.images_scanned,
            "imagesFailed": self.images_failed,
        }


class DriftDetector:
    """
    Re-scans the images of a stored lead and diffs the result.

    Args:
        router: ExtractionRouter used in vision mode
        max_images: Images to scan per lead (front and back)
        downloader: Callable url -> base64 string or None
    """

    def __init__(
        self,
        router,
        max_images: int = MAX_IMAGES_PER_LEAD,
        downloader: Callable[[str], Optional[str]] = download_image_as_base64
    ):
        self.router = router
        self.max_images = max_images
        self.downloader = downloader

    def rescan(self, lead: StoredLead) -> RescanReport:
        """
        Re-extract a lead's card images and compare with its stored details.

        Images are downloaded and scanned one at a time.

        Args:
            lead: Stored lead with image URLs

        Returns:
            RescanReport (record is None when every image failed)
        """
        report = RescanReport(lead_id=lead.lead_id)
        merged: Optional[ContactRecord] = None

        for index, url in enumerate(lead.images[:self.max_images], start=1):
            logger.info(f"Lead {lead.lead_id}: downloading image {index}: {url[:80]}")
            image_data = self.downloader(url)
            if not image_data:
                logger.warning(f"Lead {lead.lead_id}: skipping image {index}, download failed")
                report.images_failed += 1
                continue

            outcome = self.router.run(image_data, ExtractionMethod.VISION)
            if not outcome.ok:
                logger.warning(f"Lead {lead.lead_id}: scan {index} failed: {outcome.error}")
                report.images_failed += 1
                continue

            report.images_scanned += 1
            merged = outcome.record if merged is None else merge(merged, outcome.record)

        if merged is None:
            logger.warning(f"Lead {lead.lead_id}: all scans failed")
            return report

        report.record = merged
        report.rows = diff(lead.details, merged)
        report.phone_rows = compare_phone_numbers(lead.phone_numbers, merged.phone_numbers)
        report.missing_phones = [
            row.extracted_value for row in report.phone_rows
            if row.status is DiffStatus.MISSING_IN_STORE
        ]
        return report
