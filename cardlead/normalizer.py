"""
Normalization of raw provider output into ContactRecord.

Cleans and validates every field after the providers have answered.
normalize() is total: whatever it is given, it returns a fully populated
record and never raises.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlsplit, urlunsplit

from .schema import ContactRecord, FIELD_MAP, SCALAR_FIELDS

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PHONE_LENGTH = 6


def is_valid_email(email: str) -> bool:
    """Check the basic local@domain.tld shape."""
    return bool(EMAIL_PATTERN.match(email or ""))


def clean_email(email: str) -> str:
    return re.sub(r"\s+", "", email).lower()


def format_phone_number(phone: str) -> str:
    """Keep digits and plus signs, with at most one leading '+'.

    Args:
        phone: Phone number as printed on the card

    Returns:
        Formatted number, e.g. "+1 (415) 555-0100" -> "+14155550100"
    """
    cleaned = re.sub(r"[^\d+]", "", phone or "")
    if "+" in cleaned:
        cleaned = "+" + cleaned.replace("+", "")
    return cleaned


def canonical_website(website: str) -> str:
    """Add https:// when no scheme is given; lower-case scheme and host only."""
    website = website.strip()
    if not website:
        return ""
    if not website.lower().startswith(("http://", "https://")):
        website = "https://" + website
    try:
        parts = urlsplit(website)
    except ValueError:
        return website
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, parts.fragment))


def dedupe_emails(emails: Iterable[str]) -> List[str]:
    """Drop case-insensitive duplicates, keeping first-seen order."""
    seen = set()
    out = []
    for email in emails:
        key = email.lower()
        if key not in seen:
            seen.add(key)
            out.append(email)
    return out


def dedupe_phones(phones: Iterable[str]) -> List[str]:
    """Drop duplicates after phone formatting, keeping first-seen order."""
    seen = set()
    out = []
    for phone in phones:
        key = format_phone_number(phone)
        if key not in seen:
            seen.add(key)
            out.append(phone)
    return out


class ContactNormalizer:
    """Turns loosely-shaped provider JSON into a ContactRecord."""

    # Alternate keys models and QR payloads use for canonical fields
    SCALAR_ALIASES = {
        "position": ("title", "jobTitle"),
        "zipcode": ("zipCode", "postalCode", "pinCode"),
    }
    FULL_NAME_KEYS = ("name", "fullName")

    def normalize(self, raw: Any) -> ContactRecord:
        """
        Normalize a raw object into a ContactRecord.

        Args:
            raw: Provider dict, an existing ContactRecord, or anything else

        Returns:
            Fully populated ContactRecord
        """
        if isinstance(raw, ContactRecord):
            raw = raw.to_dict()
        if not isinstance(raw, dict):
            return ContactRecord()

        values: Dict[str, str] = {}
        for wire_name in SCALAR_FIELDS:
            values[wire_name] = self._scalar(raw.get(wire_name))
            if not values[wire_name]:
                for alias in self.SCALAR_ALIASES.get(wire_name, ()):
                    values[wire_name] = self._scalar(raw.get(alias))
                    if values[wire_name]:
                        break

        if not values["firstName"] and not values["lastName"]:
            first, last = self._split_full_name(raw)
            values["firstName"], values["lastName"] = first, last

        values["website"] = canonical_website(values["website"])

        record = ContactRecord(
            emails=self._emails(raw),
            phone_numbers=self._phones(raw),
        )
        for wire_name, value in values.items():
            setattr(record, FIELD_MAP[wire_name], value)
        return record

    @staticmethod
    def _scalar(value: Any) -> str:
        if isinstance(value, bool):
            return ""
        if isinstance(value, str):
            return value.strip()
        if isinstance(value, (int, float)):
            return str(value)
        return ""

    @staticmethod
    def _string_list(value: Any) -> List[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        return [v.strip() for v in value if isinstance(v, str) and v.strip()]

    def _split_full_name(self, raw: Dict) -> tuple:
        for key in self.FULL_NAME_KEYS:
            full_name = self._scalar(raw.get(key))
            if full_name:
                parts = full_name.split()
                return parts[0], " ".join(parts[1:])
        return "", ""

    def _emails(self, raw: Dict) -> List[str]:
        candidates = self._string_list(raw.get("emails"))
        if not candidates:
            candidates = self._string_list(raw.get("email"))

        emails = []
        for candidate in candidates:
            email = clean_email(candidate)
            if is_valid_email(email):
                emails.append(email)
            else:
                logger.debug(f"Dropping invalid email: {candidate!r}")
        return dedupe_emails(emails)

    def _phones(self, raw: Dict) -> List[str]:
        candidates = self._string_list(raw.get("phoneNumbers"))
        if not candidates:
            candidates = self._string_list(raw.get("phoneNumber"))
        candidates += self._string_list(raw.get("mobile"))

        phones = []
        for candidate in candidates:
            phone = format_phone_number(candidate)
            if len(phone) >= MIN_PHONE_LENGTH:
                phones.append(phone)
        return dedupe_phones(phones)


_normalizer = ContactNormalizer()


def normalize(raw: Optional[Any]) -> ContactRecord:
    """
    Convenience function to normalize raw extracted data.

    Args:
        raw: Raw dictionary from a provider (or None)

    Returns:
        Normalized ContactRecord
    """
    return _normalizer.normalize(raw)
