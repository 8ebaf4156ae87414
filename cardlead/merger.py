"""
Merging of contact records extracted from several images of one card.

Front and back photos each see part of the card; merging them must never
lose a field that any single image populated.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from .schema import ContactRecord, ExtractionMethod, ExtractionOutcome, FIELD_MAP, SCALAR_FIELDS
from .scoring import confidence_score

logger = logging.getLogger(__name__)


def _union(first: Iterable[str], second: Iterable[str], case_insensitive: bool) -> List[str]:
    seen = set()
    out = []
    for item in list(first) + list(second):
        key = item.lower() if case_insensitive else item
        if key not in seen:
            seen.add(key)
            out.append(item)
    return out


def merge(a: ContactRecord, b: ContactRecord) -> ContactRecord:
    """
    Merge two records, preferring a's scalar values.

    Args:
        a: Primary record (earlier image)
        b: Secondary record (later image)

    Returns:
        New record: union of emails/phones, a's scalars unless empty
    """
    merged = a.copy()
    merged.emails = _union(a.emails, b.emails, case_insensitive=True)
    merged.phone_numbers = _union(a.phone_numbers, b.phone_numbers, case_insensitive=False)

    for wire_name in SCALAR_FIELDS:
        attr = FIELD_MAP[wire_name]
        if not (getattr(a, attr) or "").strip():
            setattr(merged, attr, getattr(b, attr))
    return merged


def merge_all(records: Sequence[ContactRecord]) -> ContactRecord:
    """Fold merge() left to right; zero records give an empty record."""
    if not records:
        return ContactRecord()
    result = records[0]
    for record in records[1:]:
        result = merge(result, record)
    return result


def merge_outcomes(
    outcomes: Sequence[ExtractionOutcome],
    method: ExtractionMethod = ExtractionMethod.VISION
) -> ExtractionOutcome:
    """
    Combine per-image extraction outcomes into one.

    Args:
        outcomes: Outcomes in image order
        method: Method reported when there are no outcomes at all

    Returns:
        Successful outcome over all ok inputs, or the first failure
    """
    successes = [o for o in outcomes if o.ok]
    if not successes:
        first_failure: Optional[ExtractionOutcome] = outcomes[0] if outcomes else None
        if first_failure is None:
            return ExtractionOutcome(ok=False, method=method, error="No images were scanned")
        return first_failure

    if len(successes) == 1:
        return successes[0]

    record = merge_all([o.record for o in successes])
    logger.info(f"Merged {len(successes)} of {len(outcomes)} image extractions")
    return ExtractionOutcome(
        ok=True,
        method=successes[0].method,
        record=record,
        raw_text="\n".join(o.raw_text for o in successes if o.raw_text),
        confidence=confidence_score(record),
        provider=",".join(dict.fromkeys(o.provider for o in successes if o.provider)),
    )
