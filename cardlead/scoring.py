"""
Completeness scoring for extracted contacts.
"""

from .schema import ContactRecord

# Fixed denominator: ten tracked fields make a "complete" card
CONFIDENCE_FIELD_COUNT = 10


def confidence_score(record: ContactRecord) -> float:
    """Populated-field ratio in [0, 1], rounded to 2 decimals."""
    populated = len(record.populated_fields())
    return round(min(populated / CONFIDENCE_FIELD_COUNT, 1.0), 2)


def lead_rating(record: ContactRecord) -> int:
    """
    Rate lead quality on a 1-5 scale from the contact methods present.

    Args:
        record: Normalized contact record

    Returns:
        5 for email + phone + name + company, down to 1 for nothing usable
    """
    email = bool(record.emails)
    phone = bool(record.phone_numbers)
    name = bool(record.first_name or record.last_name)
    company = bool(record.company)

    if email and phone and name and company:
        return 5
    if email and phone and name:
        return 4
    if (email or phone) and name and company:
        return 4
    if (email or phone) and name:
        return 3
    if email or phone:
        return 3
    if name or company:
        return 2
    return 1
