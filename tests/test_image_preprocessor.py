"""Tests for the OCR image preprocessor."""
import cv2
import numpy as np
import pytest

from config.settings import PreprocessingConfig, PreprocessingLevel
from utils.image_preprocessor import ImagePreprocessor, preprocess_image
from utils.image_validator import InputValidationError


def decode_gray(image_bytes):
    return cv2.imdecode(np.frombuffer(image_bytes, np.uint8), cv2.IMREAD_UNCHANGED)


@pytest.mark.parametrize("level,expected", [
    (PreprocessingLevel.QUICK, ['grayscale']),
    (PreprocessingLevel.STANDARD, ['grayscale', 'noise-reduction', 'clahe']),
    (PreprocessingLevel.FULL, ['grayscale', 'deskew', 'noise-reduction', 'clahe', 'normalization', 'sharpen']),
])
def test_stage_lists_per_level(color_image_bytes, level, expected):
    result = ImagePreprocessor(PreprocessingConfig.for_level(level)).preprocess(color_image_bytes)
    assert result.applied == expected


def test_output_is_grayscale_png(color_image_bytes):
    result = preprocess_image(color_image_bytes)

    assert result.image_bytes.startswith(b'\x89PNG')
    assert result.metadata.format == 'png'
    image = decode_gray(result.image_bytes)
    assert image.ndim == 2
    assert image.shape == (300, 400)


def test_small_image_is_never_upscaled(color_image_bytes):
    result = preprocess_image(color_image_bytes)

    assert 'downscale' not in result.applied
    assert result.metadata.original_size.width == 400
    assert result.metadata.processed_size.width == 400
    assert result.metadata.processed_size.height == 300


def test_large_image_is_downscaled(large_image_bytes):
    result = preprocess_image(large_image_bytes)

    assert result.applied == ['grayscale', 'downscale']
    assert result.metadata.original_size.width == 2400
    assert result.metadata.original_size.height == 1600
    assert result.metadata.processed_size.width == 1200
    assert result.metadata.processed_size.height == 800


def test_downscale_can_be_disabled(large_image_bytes):
    result = preprocess_image(large_image_bytes, PreprocessingConfig(enable_downscale=False))

    assert 'downscale' not in result.applied
    assert result.metadata.processed_size.width == 2400


def test_deterministic(color_image_bytes):
    config = PreprocessingConfig.for_level('full')
    first = preprocess_image(color_image_bytes, config)
    second = preprocess_image(color_image_bytes, config)
    assert first.image_bytes == second.image_bytes


@pytest.mark.parametrize("bad_input", [b"", b"not an image", None])
def test_undecodable_input_raises(bad_input):
    with pytest.raises(InputValidationError):
        preprocess_image(bad_input)


def test_debug_mode_saves_stages(tmp_path, color_image_bytes):
    preprocessor = ImagePreprocessor(
        PreprocessingConfig.for_level('standard'),
        debug_mode=True,
        debug_output_dir=str(tmp_path)
    )
    preprocessor.preprocess(color_image_bytes)

    saved = sorted(p.name for p in tmp_path.iterdir())
    assert saved == [
        '01_original.png',
        'stage_clahe.png',
        'stage_grayscale.png',
        'stage_noise-reduction.png',
    ]


def text_block(angle):
    """White page with dark text-like bars, rotated by ``angle`` degrees."""
    page = np.full((600, 800), 255, dtype=np.uint8)
    for top in range(200, 400, 40):
        cv2.rectangle(page, (100, top), (700, top + 20), 0, -1)
    matrix = cv2.getRotationMatrix2D((400, 300), angle, 1.0)
    return cv2.warpAffine(page, matrix, (800, 600), borderValue=255)


class TestDeskew:
    def test_straight_text_has_no_skew(self):
        assert abs(ImagePreprocessor.estimate_skew(text_block(0))) < 0.5

    @pytest.mark.parametrize("angle", [8, -6])
    def test_estimates_rotation(self, angle):
        # Counter-clockwise rotation leaves text running uphill
        assert ImagePreprocessor.estimate_skew(text_block(angle)) == pytest.approx(-angle, abs=0.5)

    def test_blank_page(self):
        assert ImagePreprocessor.estimate_skew(np.full((100, 100), 255, dtype=np.uint8)) == 0.0

    def test_rotated_image_is_straightened(self):
        _, encoded = cv2.imencode('.png', text_block(8))
        result = preprocess_image(encoded.tobytes(), PreprocessingConfig(enable_deskew=True))

        assert result.applied == ['grayscale', 'deskew']
        straightened = decode_gray(result.image_bytes)
        assert straightened.shape == (600, 800)
        assert abs(ImagePreprocessor.estimate_skew(straightened)) < 1.0

    def test_disabled_by_default(self):
        _, encoded = cv2.imencode('.png', text_block(8))
        result = preprocess_image(encoded.tobytes())
        assert 'deskew' not in result.applied
