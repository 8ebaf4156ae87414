"""
Extraction Router - provider fallback for a single card input.

Flow:
    validate input -> check credentials -> materialize image (vision only)
    -> try each configured provider once, in order -> normalize -> score

The first provider whose reply normalizes to a non-empty record wins.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from .errors import (
    CardLeadError,
    ExtractionEmptyError,
    InvalidInputError,
    ProviderFailureError,
    ProviderUnavailableError,
)
from .images import decode_image, temp_image_file
from .merger import merge_all
from .normalizer import normalize
from .providers import Provider
from .schema import ContactRecord, ExtractionMethod, ExtractionOutcome
from .scoring import confidence_score

logger = logging.getLogger(__name__)


class ExtractionRouter:
    """
    Runs one image or OCR text through the provider fallback chain.

    Args:
        providers: Provider adapters in fallback order (primary first)
        temp_folder: Directory for temporary image files
    """

    def __init__(self, providers: Sequence[Provider], temp_folder: str = "temp"):
        self.providers: List[Provider] = list(providers)
        self.temp_folder = temp_folder

    def configured_providers(self) -> List[Provider]:
        return [p for p in self.providers if p.is_configured()]

    def run(self, payload: Any, mode: Union[str, ExtractionMethod] = ExtractionMethod.VISION) -> ExtractionOutcome:
        """
        Extract a contact record from an image or OCR text.

        Args:
            payload: Base64 image (vision) or OCR text (text)
            mode: "vision" or "text"

        Returns:
            ExtractionOutcome; never raises
        """
        method = ExtractionMethod.VISION
        try:
            method = self._resolve_mode(mode)
            if method is ExtractionMethod.VISION:
                raw, suffix = self._validate_image(payload)
                self._require_providers()
                with temp_image_file(raw, suffix, self.temp_folder) as image_path:
                    return self._run_providers(image_path, method, raw_text=None)

            text = self._validate_text(payload)
            self._require_providers()
            return self._run_providers(text, method, raw_text=text)

        except CardLeadError as e:
            logger.warning(f"Extraction failed [{e.kind}]: {e.message}")
            return self._failure(method, e)
        except Exception as e:
            logger.error(f"Unexpected error during extraction: {e}", exc_info=True)
            return self._failure(method, CardLeadError())

    def extract_from_image(self, image_data: str) -> ExtractionOutcome:
        return self.run(image_data, ExtractionMethod.VISION)

    def extract_from_text(self, ocr_text: str) -> ExtractionOutcome:
        return self.run(ocr_text, ExtractionMethod.TEXT)

    @staticmethod
    def _resolve_mode(mode: Union[str, ExtractionMethod]) -> ExtractionMethod:
        try:
            return ExtractionMethod(mode)
        except ValueError:
            raise InvalidInputError(f"Unknown extraction mode: {mode!r}. Use 'vision' or 'text'.")

    @staticmethod
    def _validate_image(payload: Any):
        if not isinstance(payload, str) or not payload.strip():
            raise InvalidInputError("Invalid image data - must be a base64 encoded string")
        return decode_image(payload)

    @staticmethod
    def _validate_text(payload: Any) -> str:
        if not isinstance(payload, str) or not payload.strip():
            raise InvalidInputError("Invalid OCR text - must be a non-empty string")
        return payload.strip()

    def _require_providers(self):
        if not self.configured_providers():
            raise ProviderUnavailableError()

    def _run_providers(
        self,
        payload: Any,
        method: ExtractionMethod,
        raw_text: Optional[str]
    ) -> ExtractionOutcome:
        attempted = 0
        answered = 0

        for provider in self.configured_providers():
            attempted += 1
            data = provider.extract(payload, method)
            if data is None:
                logger.info(f"{provider.name} failed, falling back to next provider")
                continue

            answered += 1
            record = self._normalize_reply(data)
            if record.is_empty():
                logger.info(f"{provider.name} returned no contact fields, falling back to next provider")
                continue

            confidence = confidence_score(record)
            logger.info(
                f"{provider.name} extracted {len(record.populated_fields())} fields "
                f"(confidence {confidence})"
            )
            if raw_text is None:
                raw_text = json.dumps(data, ensure_ascii=False)
            return ExtractionOutcome(
                ok=True,
                method=method,
                record=record,
                raw_text=raw_text,
                confidence=confidence,
                provider=provider.name,
            )

        if attempted and answered == attempted:
            raise ExtractionEmptyError()
        raise ProviderFailureError()

    @staticmethod
    def _normalize_reply(data: Dict[str, Any]) -> ContactRecord:
        """Normalize a reply, merging a 'contacts' array into one record."""
        contacts = data.get("contacts")
        if not isinstance(contacts, list):
            return normalize(data)

        top_level = normalize({k: v for k, v in data.items() if k != "contacts"})
        records = [normalize(c) for c in contacts if isinstance(c, dict)]
        return merge_all([top_level] + records)

    @staticmethod
    def _failure(method: ExtractionMethod, error: CardLeadError) -> ExtractionOutcome:
        return ExtractionOutcome(
            ok=False,
            method=method,
            record=ContactRecord(),
            error=error.message,
            error_kind=error.kind,
        )
