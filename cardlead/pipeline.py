"""
Card Scan Pipeline
Service facade behind the HTTP routes and the rescan CLI

FLOW:
1. Validate the request shape (image / OCR text / images / QR text)
2. Route through the provider fallback chain (OpenAI first, Gemini fallback)
3. Merge multi-image results, score, and build the response payload
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from .drift import DriftDetector, compare_phone_numbers, diff, find_missing_phone_numbers
from .errors import CardLeadError, InvalidInputError
from .images import download_image_as_base64
from .merger import merge_outcomes
from .prompts import PROMPT_VERSION
from .providers import Provider, build_providers
from .qr import LandingPageScraper, QRClassifier
from .router import ExtractionRouter
from .schema import DiffStatus, ExtractionMethod

logger = logging.getLogger(__name__)

BACK_OF_CARD_SEPARATOR = "\n\n--- BACK OF CARD ---\n\n"
DEFAULT_MAX_IMAGES = 3


def error_response(error: CardLeadError) -> Dict[str, Any]:
    return {"success": False, "error": error.message, "errorKind": error.kind}


class CardScanPipeline:
    """Entry point for card, multi-image and QR scans.

    Args:
        config: Config class (provider keys, limits, temp folder)
        providers: Override the provider chain built from config
        scraper: Override the landing-page scraper for QR URLs
        downloader: Override the image downloader used by rescans
    """

    def __init__(
        self,
        config=None,
        providers: Optional[Sequence[Provider]] = None,
        scraper: Optional[LandingPageScraper] = None,
        downloader=download_image_as_base64
    ):
        self.config = config
        self.max_images = int(self._setting("MAX_IMAGES", DEFAULT_MAX_IMAGES))
        self.rescan_max_images = int(self._setting("RESCAN_MAX_IMAGES", 2))
        self.provider_timeout = self._setting("PROVIDER_TIMEOUT", 30)

        if providers is None:
            providers = build_providers(config) if config is not None else []

        self.router = ExtractionRouter(providers, temp_folder=self._setting("TEMP_FOLDER", "temp"))

        if scraper is None and self._setting("QR_FETCH_LANDING_PAGES", False):
            scraper = LandingPageScraper()
        self.qr_classifier = QRClassifier(router=self.router, scraper=scraper)

        self.drift_detector = DriftDetector(
            self.router,
            max_images=self.rescan_max_images,
            downloader=downloader,
        )

        configured = [p.name for p in self.router.configured_providers()]
        if configured:
            logger.info(f"CardScanPipeline initialized with providers: {', '.join(configured)}")
        else:
            logger.warning("CardScanPipeline initialized without any configured provider")

    def _setting(self, name: str, default: Any) -> Any:
        return getattr(self.config, name, default) if self.config is not None else default

    # ======================================================
    # CARD SCANS
    # ======================================================

    @staticmethod
    def _optional_text(value: Any, field_name: str) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise InvalidInputError(f"'{field_name}' must be a string")
        return value.strip() or None

    def _combine_text(
        self,
        ocr_text: Any,
        front_ocr_text: Any,
        back_ocr_text: Any
    ) -> Optional[str]:
        text = self._optional_text(ocr_text, "ocrText")
        front = self._optional_text(front_ocr_text, "frontOcrText")
        back = self._optional_text(back_ocr_text, "backOcrText")

        if text:
            return text
        if front and back:
            return front + BACK_OF_CARD_SEPARATOR + back
        return front or back

    def scan_card(
        self,
        image: Any = None,
        ocr_text: Any = None,
        front_ocr_text: Any = None,
        back_ocr_text: Any = None
    ) -> Dict[str, Any]:
        """
        Scan one business card from an image or from OCR text.

        OCR text (single, or front + back) wins over an image when both
        are supplied.

        Args:
            image: Base64 image, optionally a data URL
            ocr_text: OCR text of the card
            front_ocr_text: OCR text of the front side
            back_ocr_text: OCR text of the back side

        Returns:
            Card-scan response payload
        """
        try:
            text = self._combine_text(ocr_text, front_ocr_text, back_ocr_text)
            if text is not None:
                logger.info(f"Scanning card from OCR text ({len(text)} chars)")
                outcome = self.router.run(text, ExtractionMethod.TEXT)
            elif image is not None:
                if not isinstance(image, str):
                    raise InvalidInputError("Invalid image data - must be a base64 encoded string")
                logger.info("Scanning card from image")
                outcome = self.router.run(image, ExtractionMethod.VISION)
            else:
                raise InvalidInputError()
        except CardLeadError as e:
            logger.warning(f"Rejected card scan: {e.message}")
            return error_response(e)

        return outcome.to_response()

    def scan_card_images(self, images: Any) -> Dict[str, Any]:
        """
        Scan up to MAX_IMAGES photos of the same card and merge the results.

        Images are processed one at a time, in order.

        Args:
            images: List of base64 images

        Returns:
            Card-scan response payload for the merged record
        """
        try:
            if not isinstance(images, list) or not images:
                raise InvalidInputError("'images' must be a non-empty list of base64 images")
            if len(images) > self.max_images:
                raise InvalidInputError(f"Maximum {self.max_images} images allowed per scan")
            if not all(isinstance(i, str) and i.strip() for i in images):
                raise InvalidInputError("Every entry of 'images' must be a base64 encoded string")
        except CardLeadError as e:
            logger.warning(f"Rejected multi-image scan: {e.message}")
            return error_response(e)

        outcomes = []
        for index, image in enumerate(images, start=1):
            outcome = self.router.run(image, ExtractionMethod.VISION)
            logger.info(f"Image {index}/{len(images)}: {'ok' if outcome.ok else outcome.error_kind}")
            outcomes.append(outcome)

        return merge_outcomes(outcomes, ExtractionMethod.VISION).to_response()

    # ======================================================
    # QR
    # ======================================================

    def scan_qr(self, qr_text: Any) -> Dict[str, Any]:
        """Classify a decoded QR payload and build the QR response."""
        try:
            classification = self.qr_classifier.classify(qr_text)
        except CardLeadError as e:
            return error_response(e)
        return classification.to_response()

    # ======================================================
    # COMPARISON
    # ======================================================

    def compare(self, stored: Any, extracted: Any) -> Dict[str, Any]:
        """
        Diff stored lead details against extracted details.

        Args:
            stored: Stored details (wire-format dict)
            extracted: Extracted details (wire-format dict)

        Returns:
            Diff rows, phone rows and phones missing from the store
        """
        if not isinstance(stored, dict) or not isinstance(extracted, dict):
            return error_response(InvalidInputError("'stored' and 'extracted' must be JSON objects"))

        rows = diff(stored, extracted)
        stored_phones = self._phone_list(stored.get("phoneNumbers"))
        extracted_phones = self._phone_list(extracted.get("phoneNumbers"))
        phone_rows = compare_phone_numbers(stored_phones, extracted_phones)
        missing = find_missing_phone_numbers(stored_phones, extracted_phones)

        return {
            "success": True,
            "data": {
                "rows": [r.to_dict() for r in rows],
                "phoneRows": [r.to_dict() for r in phone_rows],
                "missingPhones": missing,
                "hasDifferences": any(
                    r.status in (DiffStatus.MISSING_IN_STORE, DiffStatus.DIFFERENT) for r in rows
                ),
            },
        }

    @staticmethod
    def _phone_list(value: Any) -> List[str]:
        if isinstance(value, str):
            return [value] if value.strip() else []
        if isinstance(value, list):
            return [str(v) for v in value if v]
        return []

    # ======================================================
    # STATUS
    # ======================================================

    def get_status(self) -> Dict[str, Any]:
        """Report providers, prompt version and limits."""
        providers = [p.describe() for p in self.router.providers]
        return {
            "ready": bool(self.router.configured_providers()),
            "providers": providers,
            "providerOrder": [p["name"] for p in providers],
            "promptVersion": PROMPT_VERSION,
            "limits": {
                "maxImages": self.max_images,
                "rescanMaxImages": self.rescan_max_images,
                "providerTimeout": self.provider_timeout,
            },
            "qrLandingPages": self.qr_classifier.scraper is not None,
        }
