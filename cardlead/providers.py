"""
Recognition provider adapters (OpenAI vision/chat and Google Gemini).

Each adapter wraps exactly one external backend: it builds the request from
the versioned prompt, calls the backend with a bounded timeout and parses the
JSON object out of the model's reply. Adapters never raise: any failure is
logged and reported as None so the router can fall through to the next one.

OpenAI GPT-4o mini is the default primary, Gemini Flash the fallback.
"""

import base64
import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
import requests
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .images import mime_type_for
from .prompts import TEXT_PROMPT, build_prompt
from .schema import ExtractionMethod

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30  # seconds per provider attempt

Payload = Union[str, Path]


def parse_json_payload(response_text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Parse the JSON object out of a model reply.

    Strips markdown code fences, takes the outermost {...} substring and
    parses it.

    Args:
        response_text: Raw text returned by the model

    Returns:
        Parsed dictionary, or None if no JSON object could be recovered
    """
    if not response_text or not isinstance(response_text, str):
        return None

    cleaned = re.sub(r"```(?:json)?", "", response_text).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None

    try:
        parsed = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class Provider(ABC):
    """
    Base class for a recognition backend.

    Subclasses implement _call(), which returns the model's raw reply text
    and may raise; extract() turns every failure into None.
    """

    name = "provider"

    def __init__(self, api_key: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        self.api_key = api_key
        self.timeout = timeout

    def is_configured(self) -> bool:
        """Check if credentials are available for this backend."""
        return bool(self.api_key)

    def extract(self, payload: Payload, mode: Union[str, ExtractionMethod]) -> Optional[Dict[str, Any]]:
        """
        Extract contact JSON from an image file or OCR text.

        Args:
            payload: Path to the image (vision mode) or OCR text (text mode)
            mode: "vision" or "text"

        Returns:
            Parsed JSON object (possibly empty), or None on failure
        """
        if not self.is_configured():
            logger.warning(f"{self.name}: API key not set, skipping")
            return None

        mode = ExtractionMethod(mode)
        try:
            logger.info(f"{self.name}: attempting {mode.value} extraction")
            response_text = self._call(payload, mode)
        except Exception as e:
            category = self._categorize(e)
            logger.warning(f"{self.name} extraction failed [{category}]: {e}")
            return None

        data = parse_json_payload(response_text)
        if data is None:
            snippet = (response_text or "")[:200]
            logger.warning(f"{self.name} extraction failed [malformed_response]: {snippet!r}")
            return None

        logger.debug(f"{self.name} parsed response: {data}")
        return data

    @abstractmethod
    def _call(self, payload: Payload, mode: ExtractionMethod) -> str:
        """Call the backend and return the reply text."""

    def _categorize(self, error: Exception) -> str:
        if isinstance(error, (requests.exceptions.Timeout, httpx.TimeoutException)):
            return "timeout"
        if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
            return self._categorize_status(error.response.status_code, error.response.text)
        return "error"

    @staticmethod
    def _categorize_status(status: int, body: str = "") -> str:
        body = (body or "").lower()
        if status == 429:
            return "quota_exceeded" if "insufficient_quota" in body or "quota" in body else "rate_limited"
        if status in (401, 403):
            return "invalid_api_key"
        return "http_error"

    def describe(self) -> Dict[str, Any]:
        return {"name": self.name, "configured": self.is_configured()}


class OpenAIProvider(Provider):
    """OpenAI Chat Completions over HTTPS (vision and text)."""

    name = "openai"
    API_URL = "https://api.openai.com/v1/chat/completions"

    def __init__(
        self,
        api_key: Optional[str] = None,
        vision_model: str = "gpt-4o-mini",
        text_model: str = "gpt-4o",
        timeout: float = DEFAULT_TIMEOUT
    ):
        super().__init__(api_key=api_key, timeout=timeout)
        self.vision_model = vision_model
        self.text_model = text_model

    def _build_messages(self, payload: Payload, mode: ExtractionMethod) -> List[Dict[str, Any]]:
        if mode is ExtractionMethod.TEXT:
            return [
                {"role": "system", "content": TEXT_PROMPT},
                {"role": "user", "content": str(payload)},
            ]

        image_path = Path(payload)
        encoded = base64.b64encode(image_path.read_bytes()).decode("ascii")
        data_url = f"data:{mime_type_for(image_path)};base64,{encoded}"
        return [{
            "role": "user",
            "content": [
                {"type": "text", "text": build_prompt(mode.value)},
                {"type": "image_url", "image_url": {"url": data_url}},
            ],
        }]

    def _call(self, payload: Payload, mode: ExtractionMethod) -> str:
        body = {
            "model": self.vision_model if mode is ExtractionMethod.VISION else self.text_model,
            "messages": self._build_messages(payload, mode),
            "temperature": 0.0,
            "max_tokens": 1024,
        }
        response = requests.post(
            self.API_URL,
            json=body,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )
        response.raise_for_status()

        choices = response.json().get("choices") or []
        if not choices:
            return ""
        content = (choices[0].get("message") or {}).get("content")
        return content if isinstance(content, str) else ""

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info.update({"vision_model": self.vision_model, "text_model": self.text_model})
        return info


class GeminiProvider(Provider):
    """Google Gemini through the google-genai SDK."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
        timeout: float = DEFAULT_TIMEOUT
    ):
        super().__init__(api_key=api_key, timeout=timeout)
        self.model_name = model
        self._client = None

    def _get_client(self) -> "genai.Client":
        if self._client is None:
            # HttpOptions.timeout is in milliseconds
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._client

    def _build_parts(self, payload: Payload, mode: ExtractionMethod) -> List["types.Part"]:
        if mode is ExtractionMethod.TEXT:
            return [types.Part.from_text(text=TEXT_PROMPT + str(payload))]

        image_path = Path(payload)
        return [
            types.Part.from_text(text=build_prompt(mode.value)),
            types.Part.from_bytes(data=image_path.read_bytes(), mime_type=mime_type_for(image_path)),
        ]

    def _call(self, payload: Payload, mode: ExtractionMethod) -> str:
        response = self._get_client().models.generate_content(
            model=self.model_name,
            contents=[types.Content(role="user", parts=self._build_parts(payload, mode))],
            config=types.GenerateContentConfig(
                temperature=0.0,
                max_output_tokens=4096,
            ),
        )
        return response.text or ""

    def _categorize(self, error: Exception) -> str:
        if isinstance(error, genai_errors.APIError):
            return self._categorize_status(error.code or 0, str(error.message or error.status or ""))
        return super()._categorize(error)

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["model"] = self.model_name
        return info


PROVIDER_FACTORIES = {
    "openai": lambda config: OpenAIProvider(
        api_key=getattr(config, "OPENAI_API_KEY", None),
        vision_model=getattr(config, "OPENAI_VISION_MODEL", "gpt-4o-mini"),
        text_model=getattr(config, "OPENAI_TEXT_MODEL", "gpt-4o"),
        timeout=getattr(config, "PROVIDER_TIMEOUT", DEFAULT_TIMEOUT),
    ),
    "gemini": lambda config: GeminiProvider(
        api_key=getattr(config, "GEMINI_API_KEY", None),
        model=getattr(config, "GEMINI_MODEL", "gemini-2.5-flash"),
        timeout=getattr(config, "PROVIDER_TIMEOUT", DEFAULT_TIMEOUT),
    ),
}


def build_providers(config) -> List[Provider]:
    """
    Build provider adapters in the configured fallback order.

    Args:
        config: Config class (reads PROVIDER_ORDER and credentials)

    Returns:
        Ordered list of providers, primary first
    """
    order = getattr(config, "PROVIDER_ORDER", ["openai", "gemini"])
    providers = []
    for name in order:
        factory = PROVIDER_FACTORIES.get(name)
        if factory is None:
            logger.warning(f"Unknown provider in PROVIDER_ORDER: {name}")
            continue
        providers.append(factory(config))
    return providers
