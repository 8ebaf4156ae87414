"""
Shared fixtures for the test suite.
"""

import pytest

from tests.helpers import make_image_base64


@pytest.fixture
def png_base64():
    """Small valid PNG, base64-encoded."""
    return make_image_base64("PNG")


@pytest.fixture
def jpeg_data_url():
    """Small valid JPEG as a data URL."""
    return "data:image/jpeg;base64," + make_image_base64("JPEG")


@pytest.fixture
def temp_folder(tmp_path):
    folder = tmp_path / "temp"
    folder.mkdir()
    return folder


@pytest.fixture
def sample_reply():
    return {
        "firstName": "Rajesh",
        "lastName": "Kumar",
        "company": "Machinery Trading Company",
        "position": "Owner",
        "emails": ["Rajesh@Example.com"],
        "phoneNumbers": ["+91 98765-43210"],
        "website": "example.com",
        "address": "",
        "city": "Mumbai",
        "zipcode": "",
        "country": "India",
    }
