"""
Tests for the extraction router.

Tests provider fallback, failure classification and temp-file ownership.
"""

import json

import pytest

from cardlead.errors import ErrorKind
from cardlead.router import ExtractionRouter
from cardlead.schema import ExtractionMethod
from tests.helpers import FakeProvider


class TestExtractionRouter:
    """Test cases for ExtractionRouter.run()."""

    def make_router(self, temp_folder, *providers):
        return ExtractionRouter(list(providers), temp_folder=str(temp_folder))

    def test_text_success_first_provider(self, temp_folder, sample_reply):
        primary = FakeProvider("openai", [sample_reply])
        fallback = FakeProvider("gemini", [{"firstName": "Other"}])
        router = self.make_router(temp_folder, primary, fallback)

        outcome = router.run("  Rajesh Kumar\nOwner  ", "text")

        assert outcome.ok
        assert outcome.method is ExtractionMethod.TEXT
        assert outcome.provider == "openai"
        assert outcome.raw_text == "Rajesh Kumar\nOwner"
        assert outcome.record.emails == ["rajesh@example.com"]
        assert outcome.confidence == 0.9
        assert fallback.calls == []

    def test_falls_back_on_failure(self, temp_folder):
        primary = FakeProvider("openai", [None])
        fallback = FakeProvider("gemini", [{"company": "Acme"}])
        router = self.make_router(temp_folder, primary, fallback)

        outcome = router.run("Acme", "text")

        assert outcome.ok
        assert outcome.provider == "gemini"
        assert len(primary.calls) == 1
        assert len(fallback.calls) == 1

    def test_falls_back_on_empty_reply(self, temp_folder):
        primary = FakeProvider("openai", [{"firstName": "", "emails": ["not-an-email"]}])
        fallback = FakeProvider("gemini", [{"firstName": "Jane"}])
        router = self.make_router(temp_folder, primary, fallback)

        outcome = router.run("Jane", "text")

        assert outcome.ok
        assert outcome.record.first_name == "Jane"

    def test_skips_unconfigured_providers(self, temp_folder):
        missing = FakeProvider("openai", [{"firstName": "X"}], configured=False)
        gemini = FakeProvider("gemini", [{"firstName": "Jane"}])
        router = self.make_router(temp_folder, missing, gemini)

        outcome = router.run("Jane", "text")

        assert outcome.provider == "gemini"
        assert missing.calls == []

    def test_all_failed(self, temp_folder):
        router = self.make_router(temp_folder, FakeProvider("openai", [None]), FakeProvider("gemini", [{}]))

        outcome = router.run("Jane", "text")

        assert not outcome.ok
        assert outcome.error_kind == ErrorKind.PROVIDER_FAILURE
        assert outcome.record.is_empty()

    def test_all_answered_empty(self, temp_folder):
        router = self.make_router(temp_folder, FakeProvider("openai", [{}]), FakeProvider("gemini", [{"notes": ""}]))

        outcome = router.run("Jane", "text")

        assert not outcome.ok
        assert outcome.error_kind == ErrorKind.EXTRACTION_EMPTY

    def test_no_providers_configured(self, temp_folder):
        provider = FakeProvider("openai", configured=False)
        router = self.make_router(temp_folder, provider)

        outcome = router.run("Jane", "text")

        assert not outcome.ok
        assert outcome.error_kind == ErrorKind.PROVIDER_UNAVAILABLE
        assert "not configured" in outcome.error

    @pytest.mark.parametrize("payload,mode", [
        ("", "text"),
        ("   ", "text"),
        (None, "text"),
        (123, "vision"),
        ("definitely not base64", "vision"),
        ("Jane", "audio"),
    ])
    def test_invalid_input_before_any_call(self, temp_folder, payload, mode):
        provider = FakeProvider("openai", [{"firstName": "Jane"}])
        router = self.make_router(temp_folder, provider)

        outcome = router.run(payload, mode)

        assert not outcome.ok
        assert outcome.error_kind == ErrorKind.INVALID_INPUT
        assert provider.calls == []

    def test_invalid_input_checked_before_credentials(self, temp_folder):
        router = self.make_router(temp_folder, FakeProvider("openai", configured=False))
        outcome = router.run("not base64 at all", "vision")
        assert outcome.error_kind == ErrorKind.INVALID_INPUT

    def test_oversized_image_is_invalid_input(self, temp_folder, png_base64, monkeypatch):
        monkeypatch.setattr("PIL.Image.MAX_IMAGE_PIXELS", 10)
        provider = FakeProvider("openai", [{"firstName": "Jane"}])
        router = self.make_router(temp_folder, provider)

        outcome = router.run(png_base64, "vision")

        assert outcome.error_kind == ErrorKind.INVALID_INPUT
        assert provider.calls == []

    def test_vision_uses_temp_file_and_cleans_up(self, temp_folder, png_base64):
        seen = []

        class RecordingProvider(FakeProvider):
            def extract(self, payload, mode):
                seen.append((payload, payload.exists()))
                return {"company": "Acme", "website": "acme.com"}

        router = self.make_router(temp_folder, RecordingProvider("openai"))

        outcome = router.run(png_base64, "vision")

        assert outcome.ok
        assert outcome.method is ExtractionMethod.VISION
        path, existed = seen[0]
        assert existed
        assert not path.exists()
        assert list(temp_folder.iterdir()) == []
        assert json.loads(outcome.raw_text)["company"] == "Acme"
        assert outcome.record.website == "https://acme.com"

    def test_temp_file_removed_when_provider_raises(self, temp_folder, png_base64):
        router = self.make_router(temp_folder, FakeProvider("openai", [RuntimeError("boom")]))

        outcome = router.run(png_base64, "vision")

        assert not outcome.ok
        assert outcome.error_kind == ErrorKind.INTERNAL_ERROR
        assert "boom" not in outcome.error
        assert list(temp_folder.iterdir()) == []

    def test_contacts_array_is_merged(self, temp_folder):
        reply = {
            "company": "Acme",
            "contacts": [
                {"firstName": "Jane", "emails": ["jane@acme.com"]},
                {"firstName": "John", "emails": ["john@acme.com"], "position": "CEO"},
            ],
        }
        router = self.make_router(temp_folder, FakeProvider("openai", [reply]))

        outcome = router.run("card text", "text")

        assert outcome.ok
        assert outcome.record.company == "Acme"
        assert outcome.record.first_name == "Jane"
        assert outcome.record.position == "CEO"
        assert outcome.record.emails == ["jane@acme.com", "john@acme.com"]

    def test_convenience_methods(self, temp_folder, png_base64):
        router = self.make_router(temp_folder, FakeProvider("openai", [{"city": "Pune"}, {"city": "Goa"}]))
        assert router.extract_from_text("Pune").record.city == "Pune"
        assert router.extract_from_image(png_base64).record.city == "Goa"
