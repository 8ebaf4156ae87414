"""
Test doubles and sample data shared across test modules.
"""

import base64
import io

from PIL import Image

from cardlead.providers import Provider


class FakeProvider(Provider):
    """Provider returning canned replies and recording what it was given."""

    def __init__(self, name="fake", replies=None, configured=True):
        super().__init__(api_key="test-key" if configured else None)
        self.name = name
        self.replies = list(replies or [])
        self.calls = []

    def extract(self, payload, mode):
        if not self.is_configured():
            return None
        self.calls.append((payload, mode))
        reply = self.replies.pop(0) if self.replies else None
        if isinstance(reply, Exception):
            raise reply
        return reply

    def _call(self, payload, mode):
        raise NotImplementedError


def make_image_base64(fmt: str = "PNG", size=(8, 8)) -> str:
    """Encode a tiny solid image with Pillow."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color=(255, 255, 255)).save(buffer, format=fmt)
    return base64.b64encode(buffer.getvalue()).decode("ascii")
