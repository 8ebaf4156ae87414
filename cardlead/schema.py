"""
Canonical data shapes for the card extraction pipeline.

ContactRecord is the one contact shape every component speaks. Every field
is always present: consumers branch on empty values, never on missing keys.
"""

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional


# Wire name -> attribute name, in canonical output order
FIELD_MAP = {
    "firstName": "first_name",
    "lastName": "last_name",
    "company": "company",
    "position": "position",
    "emails": "emails",
    "phoneNumbers": "phone_numbers",
    "website": "website",
    "address": "address",
    "city": "city",
    "zipcode": "zipcode",
    "country": "country",
    "notes": "notes",
}

ARRAY_FIELDS = ("emails", "phoneNumbers")
SCALAR_FIELDS = tuple(k for k in FIELD_MAP if k not in ARRAY_FIELDS)


class ExtractionMethod(str, Enum):
    """How the card content reached the providers."""
    VISION = "vision"
    TEXT = "text"

    @property
    def processing_method(self) -> str:
        """Name reported to API callers."""
        if self is ExtractionMethod.VISION:
            return "image_vision_api"
        return "ocr_text_analysis"


class QRKind(str, Enum):
    ENTRY_CODE = "entry_code"
    URL = "url"
    VCARD = "vcard"
    MAILTO = "mailto"
    TEL = "tel"
    PLAINTEXT = "plaintext"


class DiffStatus(str, Enum):
    MATCH = "match"
    DIFFERENT = "different"
    MISSING_IN_STORE = "missing_in_store"
    ONLY_IN_STORE = "only_in_store"
    BOTH_EMPTY = "both_empty"


@dataclass
class ContactRecord:
    """Normalized contact extracted from a card, QR payload or OCR text.

    Attributes:
        first_name: Given name
        last_name: Family name
        company: Company / organization name
        position: Job title
        emails: Lower-cased, validated, de-duplicated addresses
        phone_numbers: Digit/plus formatted, de-duplicated numbers
        website: URL with explicit scheme
        address: Street address
        city: City
        zipcode: Postal / PIN / ZIP code
        country: Country
        notes: Free-form notes
    """
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    position: str = ""
    emails: List[str] = field(default_factory=list)
    phone_numbers: List[str] = field(default_factory=list)
    website: str = ""
    address: str = ""
    city: str = ""
    zipcode: str = ""
    country: str = ""
    notes: str = ""

    def get(self, wire_name: str) -> Any:
        """Read a field by its wire (camelCase) name."""
        return getattr(self, FIELD_MAP[wire_name])

    def populated_fields(self) -> List[str]:
        """Wire names of fields holding a non-empty value."""
        populated = []
        for wire_name in FIELD_MAP:
            value = self.get(wire_name)
            if isinstance(value, list):
                if value:
                    populated.append(wire_name)
            elif value and value.strip():
                populated.append(wire_name)
        return populated

    def is_empty(self) -> bool:
        return not self.populated_fields()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire format."""
        out: Dict[str, Any] = {}
        for wire_name, attr in FIELD_MAP.items():
            value = getattr(self, attr)
            out[wire_name] = list(value) if isinstance(value, list) else value
        return out

    def copy(self) -> "ContactRecord":
        return replace(self, emails=list(self.emails), phone_numbers=list(self.phone_numbers))


def empty_record() -> ContactRecord:
    """A well-formed record with every field defaulted."""
    return ContactRecord()


@dataclass(frozen=True)
class ExtractionOutcome:
    """Result of one Extraction Router invocation."""
    ok: bool
    method: ExtractionMethod
    record: ContactRecord = field(default_factory=ContactRecord)
    raw_text: str = ""
    confidence: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    provider: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        """Build the card-scan response payload."""
        if not self.ok:
            return {
                "success": False,
                "error": self.error or "Failed to scan business card",
                "errorKind": self.error_kind,
            }
        return {
            "success": True,
            "data": {
                "ocrText": self.raw_text,
                "details": self.record.to_dict(),
                "confidence": self.confidence,
                "processingMethod": self.method.processing_method,
            },
        }


@dataclass(frozen=True)
class QRClassification:
    """Classified QR payload.

    entry_code and record are mutually exclusive: an access code never
    carries contact details and a contact payload never carries a code.
    unique_code is an event code found inside a contact payload (vCard
    note, free text); it travels next to the record, not in it.
    """
    kind: QRKind
    raw_data: str
    confidence: float
    entry_code: Optional[str] = None
    record: Optional[ContactRecord] = None
    rating: int = 1
    unique_code: Optional[str] = None

    def __post_init__(self):
        if self.entry_code is not None and self.record is not None:
            raise ValueError("entry_code and record are mutually exclusive")

    @property
    def lead_type(self) -> str:
        return "entry_code" if self.kind is QRKind.ENTRY_CODE else "full_scan"

    def to_response(self) -> Dict[str, Any]:
        """Build the QR-scan response payload."""
        data: Dict[str, Any] = {
            "rawData": self.raw_data,
            "confidence": self.confidence,
            "rating": self.rating,
        }
        if self.kind is QRKind.ENTRY_CODE:
            data["entryCode"] = self.entry_code or ""
        else:
            data["details"] = (self.record or ContactRecord()).to_dict()
            if self.unique_code:
                data["uniqueCode"] = self.unique_code
        return {
            "success": True,
            "type": self.kind.value,
            "leadType": self.lead_type,
            "data": data,
        }


@dataclass(frozen=True)
class FieldDiffRow:
    """One field of a stored-vs-extracted comparison."""
    field: str
    stored_value: str
    extracted_value: str
    status: DiffStatus

    def to_dict(self) -> Dict[str, str]:
        return {
            "field": self.field,
            "storedValue": self.stored_value,
            "extractedValue": self.extracted_value,
            "status": self.status.value,
        }


def record_to_json(record: ContactRecord) -> str:
    return json.dumps(record.to_dict(), ensure_ascii=False)
