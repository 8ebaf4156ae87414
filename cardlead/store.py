"""
Record store used by the rescan workflow.

The production lead database lives elsewhere; the workflow only needs to
list leads with their stored details and image URLs, and to append
confirmed phone numbers. JsonRecordStore implements that over a JSON file.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List

logger = logging.getLogger(__name__)


@dataclass
class StoredLead:
    """A lead as persisted: stored contact details plus uploaded card images."""
    lead_id: str
    details: Dict[str, Any] = field(default_factory=dict)
    images: List[str] = field(default_factory=list)
    lead_type: str = "full_scan"

    @property
    def display_name(self) -> str:
        first = self.details.get("firstName") or ""
        last = self.details.get("lastName") or ""
        return f"{first} {last}".strip()

    @property
    def phone_numbers(self) -> List[str]:
        phones = self.details.get("phoneNumbers") or []
        if not isinstance(phones, list):
            phones = [phones]
        return [str(p) for p in phones if p is not None and str(p).strip()]


class RecordStore(ABC):
    """Interface to the lead store."""

    @abstractmethod
    def iter_leads(self) -> Iterable[StoredLead]:
        """Yield full-scan leads that have at least one image."""

    @abstractmethod
    def append_phone_numbers(self, lead_id: str, phones: List[str]) -> List[str]:
        """Append phones to a lead and return its updated phone list."""


class JsonRecordStore(RecordStore):
    """
    Lead store backed by a JSON file.

    File format:
        {"leads": [{"id": "...", "leadType": "full_scan",
                    "details": {...ContactRecord wire fields...},
                    "images": ["https://..."]}]}

    A bare top-level list of leads is accepted too.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, list):
            data = {"leads": data}
        data.setdefault("leads", [])
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except Exception:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    @staticmethod
    def _to_lead(entry: Dict[str, Any]) -> StoredLead:
        return StoredLead(
            lead_id=str(entry.get("id") or entry.get("_id") or ""),
            details=dict(entry.get("details") or {}),
            images=list(entry.get("images") or []),
            lead_type=entry.get("leadType", "full_scan"),
        )

    def iter_leads(self) -> Iterator[StoredLead]:
        for entry in self._load()["leads"]:
            lead = self._to_lead(entry)
            if lead.lead_type == "full_scan" and lead.images:
                yield lead

    def append_phone_numbers(self, lead_id: str, phones: List[str]) -> List[str]:
        data = self._load()
        for entry in data["leads"]:
            if str(entry.get("id") or entry.get("_id") or "") != lead_id:
                continue
            details = entry.setdefault("details", {})
            updated = self._to_lead(entry).phone_numbers + list(phones)
            details["phoneNumbers"] = updated
            self._save(data)
            logger.info(f"Added {len(phones)} phone number(s) to lead {lead_id}")
            return updated
        raise KeyError(f"Lead not found: {lead_id}")
