"""Tests for the image quality gate."""
import io

import numpy as np
import pytest
from PIL import Image

from config.settings import ImageValidationConfig
from utils.image_validator import (
    REMEDIATION_CHECKLIST,
    ImageQualityError,
    InputValidationError,
    calculate_brightness,
    calculate_contrast,
    calculate_sharpness,
    check_image_input,
    read_image_metadata,
    validate_image,
    validate_image_or_raise
)

NO_SIZE_FLOOR = ImageValidationConfig(min_file_size=0)


def gif_bytes():
    buffer = io.BytesIO()
    Image.new('L', (10, 10)).save(buffer, format='GIF')
    return buffer.getvalue()


class TestValidateImage:
    def test_good_image(self, good_image_bytes):
        result = validate_image(good_image_bytes)

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.metadata.width == 1000
        assert result.metadata.height == 700
        assert result.metadata.format == 'png'
        assert result.metadata.size == len(good_image_bytes)
        assert not result.metadata.has_alpha
        assert result.quality.sharpness > 10
        assert result.quality.contrast > 30

    def test_low_resolution(self, small_image_bytes):
        result = validate_image(small_image_bytes, NO_SIZE_FLOOR)

        assert not result.is_valid
        assert result.errors == ["Image resolution too low: 100x100. Minimum: 600x400"]
        assert result.quality.sharpness is None

    def test_marginal_resolution_warns(self, noise_png):
        result = validate_image(noise_png(700, 500), NO_SIZE_FLOOR)

        assert result.is_valid
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Image resolution is marginal: 700x500")

    def test_blurry_image(self, blurry_image_bytes):
        result = validate_image(blurry_image_bytes, NO_SIZE_FLOOR)

        assert not result.is_valid
        assert any(e.startswith("Image is too blurry") for e in result.errors)
        assert any("low contrast" in w for w in result.warnings)

    def test_dark_image_warns(self, noise_png):
        result = validate_image(noise_png(1000, 700, seed=3, high=60), NO_SIZE_FLOOR)

        assert result.is_valid
        assert any(w.startswith("Image is too dark") for w in result.warnings)

    def test_file_size_floor(self, small_image_bytes):
        cfg = ImageValidationConfig(min_width=10, min_height=10)
        result = validate_image(small_image_bytes, cfg)

        assert not result.is_valid
        assert result.errors[0].startswith("File size too small")

    def test_garbage_bytes_reported_not_raised(self):
        result = validate_image(b"definitely not an image")

        assert not result.is_valid
        assert result.errors[0].startswith("Failed to validate image")
        assert result.metadata is None

    def test_wrong_type_reported(self):
        result = validate_image("not bytes")
        assert not result.is_valid

    def test_to_dict(self, good_image_bytes):
        data = validate_image(good_image_bytes).to_dict()
        assert data['is_valid'] is True
        assert data['metadata']['format'] == 'png'


class TestValidateOrRaise:
    def test_blurry_raises_quality_error(self, blurry_image_bytes):
        with pytest.raises(ImageQualityError) as exc_info:
            validate_image_or_raise(blurry_image_bytes, NO_SIZE_FLOOR)

        message = str(exc_info.value)
        assert message.startswith("Image validation failed:")
        assert "Suggestions for better results:" in message
        assert exc_info.value.details['remediation'] == REMEDIATION_CHECKLIST

    def test_low_resolution_raises_quality_error(self, small_image_bytes):
        with pytest.raises(ImageQualityError):
            validate_image_or_raise(small_image_bytes, NO_SIZE_FLOOR)

    def test_garbage_raises_input_error(self):
        with pytest.raises(InputValidationError):
            validate_image_or_raise(b"\x00\x01\x02")

    def test_size_failure_raises_input_error(self, small_image_bytes):
        with pytest.raises(InputValidationError):
            validate_image_or_raise(small_image_bytes)

    def test_valid_image_returns_result(self, good_image_bytes):
        assert validate_image_or_raise(good_image_bytes).is_valid


class TestCheckImageInput:
    def test_png(self, good_image_bytes):
        assert check_image_input(good_image_bytes) == 'PNG'

    def test_rejects_non_bytes(self):
        with pytest.raises(InputValidationError) as exc_info:
            check_image_input("receipt.png")
        assert exc_info.value.details['error_type'] == 'invalid_type'

    def test_rejects_empty(self):
        with pytest.raises(InputValidationError) as exc_info:
            check_image_input(b"")
        assert exc_info.value.details['error_type'] == 'empty'

    def test_rejects_oversize(self, good_image_bytes):
        with pytest.raises(InputValidationError) as exc_info:
            check_image_input(good_image_bytes, max_file_size=1024)
        assert exc_info.value.details['error_type'] == 'too_large'

    def test_rejects_undecodable(self):
        with pytest.raises(InputValidationError) as exc_info:
            check_image_input(b"garbage")
        assert exc_info.value.details['error_type'] == 'decode_error'

    def test_rejects_gif(self):
        with pytest.raises(InputValidationError) as exc_info:
            check_image_input(gif_bytes())
        assert exc_info.value.details['error_type'] == 'unsupported_format'


class TestReadImageMetadata:
    def test_png(self, small_image_bytes):
        metadata = read_image_metadata(small_image_bytes)
        assert (metadata.width, metadata.height) == (100, 100)
        assert metadata.format == 'png'
        assert metadata.size == len(small_image_bytes)

    def test_matches_validation_metadata(self, good_image_bytes):
        assert read_image_metadata(good_image_bytes) == validate_image(good_image_bytes).metadata

    def test_undecodable(self):
        with pytest.raises(InputValidationError) as exc_info:
            read_image_metadata(b"garbage")
        assert exc_info.value.details['error_type'] == 'decode_error'


class TestMetrics:
    def test_flat_image_has_no_sharpness_or_contrast(self):
        flat = np.full((200, 200), 128.0)
        assert calculate_sharpness(flat) == 0.0
        assert calculate_contrast(flat) == 0.0
        assert calculate_brightness(flat) == 128.0

    def test_tiny_image_sharpness(self):
        assert calculate_sharpness(np.zeros((3, 3))) == 0.0

    def test_noise_is_sharp(self):
        gray = np.random.default_rng(5).integers(0, 256, size=(400, 400)).astype(np.float64)
        assert calculate_sharpness(gray) > 1000
