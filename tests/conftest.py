"""Test configuration and fixtures."""
import os
from datetime import datetime

import cv2
import numpy as np
import pytest
from unittest.mock import Mock

from models.receipt import OcrLine

# Fixed "today" for date extraction tests
REFERENCE_DATE = datetime(2024, 6, 15)


def encode_png(image: np.ndarray) -> bytes:
    success, buffer = cv2.imencode('.png', image)
    assert success
    return buffer.tobytes()


def noise_image(width: int, height: int, seed: int = 7, high: int = 256) -> np.ndarray:
    """Random grayscale pixels: sharp, high contrast and incompressible."""
    rng = np.random.default_rng(seed)
    return rng.integers(0, high, size=(height, width), dtype=np.uint8)


@pytest.fixture
def make_lines():
    """Build OcrLine lists from text with a uniform or per-line confidence."""
    def _make(texts, confidence=0.9):
        if isinstance(confidence, (list, tuple)):
            return [OcrLine(text=t, confidence=c) for t, c in zip(texts, confidence)]
        return [OcrLine(text=t, confidence=confidence) for t in texts]
    return _make


@pytest.fixture
def noise_png():
    """Factory for PNG-encoded noise images of a given size."""
    def _make(width, height, seed=7, high=256):
        return encode_png(noise_image(width, height, seed, high))
    return _make


@pytest.fixture
def reference_date():
    return REFERENCE_DATE


@pytest.fixture
def good_image_bytes():
    """1000x700 PNG that passes every quality check."""
    return encode_png(noise_image(1000, 700))


@pytest.fixture
def small_image_bytes():
    return encode_png(noise_image(100, 100))


@pytest.fixture
def blurry_image_bytes():
    """Large enough, but heavily blurred."""
    blurred = cv2.GaussianBlur(noise_image(1000, 700), (0, 0), 25)
    return encode_png(blurred)


@pytest.fixture
def color_image_bytes():
    """400x300 BGR image for preprocessing tests."""
    rng = np.random.default_rng(11)
    image = rng.integers(0, 256, size=(300, 400, 3), dtype=np.uint8)
    return encode_png(image)


@pytest.fixture
def large_image_bytes():
    """Image above the 2000px downscale threshold."""
    return encode_png(noise_image(2400, 1600))


@pytest.fixture
def mock_credentials(tmp_path):
    """Create a service account credentials file."""
    import json
    creds_file = tmp_path / "test_credentials.json"
    creds_file.write_text(json.dumps({
        "type": "service_account",
        "project_id": "test-project",
        "private_key_id": "test-key-id",
        "private_key": "test-private-key",
        "client_email": "test@test-project.iam.gserviceaccount.com",
        "client_id": "test-client-id",
        "token_uri": "https://oauth2.googleapis.com/token"
    }))
    with pytest.MonkeyPatch().context() as mp:
        mp.setenv('GOOGLE_APPLICATION_CREDENTIALS', str(creds_file))
        yield str(creds_file)


@pytest.fixture
def vision_response():
    """Mock Vision document_text_detection response."""
    response = Mock()
    response.error.message = ''
    response.full_text_annotation.text = "CORNER MARKET\nApples 2.50\nTOTAL 2.50\n"
    page = Mock()
    page.blocks = [Mock(confidence=0.9), Mock(confidence=0.8)]
    response.full_text_annotation.pages = [page]
    return response


@pytest.fixture(autouse=True)
def clean_pipeline_env():
    """Keep RECEIPT_* and OCR_ENGINE settings from leaking into tests."""
    keys = [k for k in os.environ if k.startswith('RECEIPT_') or k == 'OCR_ENGINE']
    with pytest.MonkeyPatch().context() as mp:
        for key in keys:
            mp.delenv(key, raising=False)
        yield
