"""
CardLead - business card and QR contact extraction.
"""

from .schema import ContactRecord, ExtractionMethod, ExtractionOutcome, QRClassification, FieldDiffRow
from .errors import (
    CardLeadError,
    ErrorKind,
    InvalidInputError,
    ProviderUnavailableError,
    ProviderFailureError,
    ExtractionEmptyError,
)
from .normalizer import normalize
from .providers import OpenAIProvider, GeminiProvider, build_providers
from .router import ExtractionRouter
from .merger import merge, merge_all, merge_outcomes
from .qr import QRClassifier, LandingPageScraper
from .drift import DriftDetector, diff, compare_phone_numbers, find_missing_phone_numbers
from .pipeline import CardScanPipeline

__all__ = [
    "ContactRecord",
    "ExtractionMethod",
    "ExtractionOutcome",
    "QRClassification",
    "FieldDiffRow",
    "CardLeadError",
    "ErrorKind",
    "InvalidInputError",
    "ProviderUnavailableError",
    "ProviderFailureError",
    "ExtractionEmptyError",
    "normalize",
    "OpenAIProvider",
    "GeminiProvider",
    "build_providers",
    "ExtractionRouter",
    "merge",
    "merge_all",
    "merge_outcomes",
    "QRClassifier",
    "LandingPageScraper",
    "DriftDetector",
    "diff",
    "compare_phone_numbers",
    "find_missing_phone_numbers",
    "CardScanPipeline",
]
