"""Image quality validation for OCR processing.

Checks dimensions, file size, sharpness, contrast and brightness of a
receipt photo before it is sent to a recognition engine.
"""

import io
import logging
from typing import Any, Dict, List, Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from config.settings import ImageValidationConfig
from models.image import ImageMetadata, ImageQuality, ImageValidationResult

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
SUPPORTED_FORMATS = {'JPEG', 'PNG', 'WEBP'}

DARK_BRIGHTNESS = 50
OVEREXPOSED_BRIGHTNESS = 200
MARGIN_FACTOR = 1.5

REMEDIATION_CHECKLIST = [
    'Use a resolution of at least 900x600 pixels',
    'Ensure good lighting without glare',
    'Hold the camera steady and focus on the receipt',
    'Flatten the receipt to avoid distortion',
]


class ImageValidationError(Exception):
    """Base exception for images rejected before recognition."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class InputValidationError(ImageValidationError):
    """Input bytes are of the wrong type, size or cannot be decoded."""
    pass


class ImageQualityError(ImageValidationError):
    """Image decodes but is too small or too blurry for reliable OCR."""
    pass


def check_image_input(image_bytes: Any, max_file_size: int = MAX_FILE_SIZE) -> str:
    """
    Enforce the pipeline input contract.

    Args:
        image_bytes: Raw image data
        max_file_size: Largest accepted payload in bytes

    Returns:
        The detected image format (JPEG, PNG or WEBP)

    Raises:
        InputValidationError: If the input is not a supported, size-bounded image
    """
    if not isinstance(image_bytes, (bytes, bytearray)):
        raise InputValidationError(
            f"Image data must be bytes, got {type(image_bytes).__name__}",
            {'error_type': 'invalid_type'}
        )
    if not image_bytes:
        raise InputValidationError("Image data is empty", {'error_type': 'empty'})
    if len(image_bytes) > max_file_size:
        raise InputValidationError(
            f"File size must be less than {max_file_size / 1024 / 1024:.0f}MB",
            {'error_type': 'too_large', 'size': len(image_bytes)}
        )

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            image_format = (img.format or '').upper()
    except (UnidentifiedImageError, OSError) as e:
        raise InputValidationError(
            f"Could not decode image: {str(e)}",
            {'error_type': 'decode_error'}
        ) from e

    if image_format not in SUPPORTED_FORMATS:
        raise InputValidationError(
            "File must be a JPEG, PNG, or WebP image",
            {'error_type': 'unsupported_format', 'format': image_format}
        )
    return image_format


def _metadata_from(img: Image.Image, size: int) -> ImageMetadata:
    width, height = img.size
    return ImageMetadata(
        width=width or 0,
        height=height or 0,
        format=(img.format or 'unknown').lower(),
        size=size,
        has_alpha='A' in img.getbands() or 'transparency' in img.info
    )


def read_image_metadata(image_bytes: bytes) -> ImageMetadata:
    """Dimensions, format and size of an image without measuring its quality."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            return _metadata_from(img, len(image_bytes))
    except (UnidentifiedImageError, OSError) as e:
        raise InputValidationError(
            f"Could not decode image: {str(e)}",
            {'error_type': 'decode_error'}
        ) from e


def to_grayscale_array(img: Image.Image) -> np.ndarray:
    """Grayscale pixel buffer as float64."""
    return np.asarray(img.convert('L'), dtype=np.float64)


def calculate_sharpness(gray: np.ndarray) -> float:
    """
    Laplacian variance approximation over a centered square window.

    The window side is min(100, width/4, height/4). Each sample is
    |2 * pixel - right neighbour - lower neighbour|.
    """
    height, width = gray.shape[:2]
    sample_size = min(100, width // 4, height // 4)
    start_x = (width - sample_size) // 2
    start_y = (height - sample_size) // 2
    end_x = min(start_x + sample_size, width - 1)
    end_y = min(start_y + sample_size, height - 1)
    if sample_size <= 0 or end_x <= start_x or end_y <= start_y:
        return 0.0

    current = gray[start_y:end_y, start_x:end_x]
    right = gray[start_y:end_y, start_x + 1:end_x + 1]
    down = gray[start_y + 1:end_y + 1, start_x:end_x]
    laplacian = np.abs(2 * current - right - down)
    return float(np.var(laplacian))


def calculate_contrast(gray: np.ndarray) -> float:
    """Standard deviation of grayscale intensity."""
    if gray.size == 0:
        return 0.0
    return float(np.std(gray))


def calculate_brightness(gray: np.ndarray) -> float:
    """Mean grayscale intensity (0-255)."""
    if gray.size == 0:
        return 0.0
    return float(np.mean(gray))


def validate_image(image_bytes: bytes, config: Optional[ImageValidationConfig] = None) -> ImageValidationResult:
    """
    Validate image quality for OCR processing.

    Never raises: decoding problems are reported as errors in the result.

    Args:
        image_bytes: Raw image data
        config: Validation thresholds

    Returns:
        ImageValidationResult with errors, warnings, metadata and quality metrics
    """
    cfg = config or ImageValidationConfig()
    errors: List[str] = []
    warnings: List[str] = []
    metadata = None
    quality = ImageQuality()

    if not isinstance(image_bytes, (bytes, bytearray)):
        errors.append(f"Failed to validate image: expected bytes, got {type(image_bytes).__name__}")
        return ImageValidationResult(is_valid=False, errors=errors, warnings=warnings)

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            metadata = _metadata_from(img, len(image_bytes))

            if not width or not height:
                errors.append('Could not determine image dimensions')
            elif width < cfg.min_width or height < cfg.min_height:
                errors.append(
                    f"Image resolution too low: {width}x{height}. "
                    f"Minimum: {cfg.min_width}x{cfg.min_height}"
                )
            elif width < cfg.min_width * MARGIN_FACTOR or height < cfg.min_height * MARGIN_FACTOR:
                warnings.append(
                    f"Image resolution is marginal: {width}x{height}. "
                    f"Recommended: {int(cfg.min_width * MARGIN_FACTOR)}x"
                    f"{int(cfg.min_height * MARGIN_FACTOR)} or higher"
                )

            size = len(image_bytes)
            if size < cfg.min_file_size:
                errors.append(
                    f"File size too small: {size / 1024:.2f}KB. Minimum: {cfg.min_file_size / 1024:.2f}KB"
                )
            elif size > cfg.max_file_size:
                errors.append(
                    f"File size too large: {size / 1024 / 1024:.2f}MB. "
                    f"Maximum: {cfg.max_file_size / 1024 / 1024:.2f}MB"
                )

            # Quality metrics only for images that passed the basic checks
            if not errors:
                gray = to_grayscale_array(img)

                quality.sharpness = calculate_sharpness(gray)
                if quality.sharpness < cfg.min_sharpness:
                    errors.append(
                        f"Image is too blurry (sharpness: {quality.sharpness:.2f}). "
                        f"Please use a clearer image with better focus."
                    )
                elif quality.sharpness < cfg.min_sharpness * MARGIN_FACTOR:
                    warnings.append(
                        f"Image sharpness is marginal ({quality.sharpness:.2f}). "
                        f"Consider using a clearer image."
                    )

                quality.contrast = calculate_contrast(gray)
                if quality.contrast < cfg.min_contrast:
                    warnings.append(
                        f"Image has low contrast ({quality.contrast:.2f}). "
                        f"Better lighting may improve results."
                    )

                quality.brightness = calculate_brightness(gray)
                if quality.brightness < DARK_BRIGHTNESS:
                    warnings.append(
                        f"Image is too dark (brightness: {quality.brightness:.2f}). "
                        f"Better lighting may improve results."
                    )
                elif quality.brightness > OVEREXPOSED_BRIGHTNESS:
                    warnings.append(
                        f"Image is overexposed (brightness: {quality.brightness:.2f}). "
                        f"Reduce lighting or exposure."
                    )
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        errors.append(f"Failed to validate image: {str(e)}")

    result = ImageValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        metadata=metadata,
        quality=quality
    )
    logger.debug(f"Image validation: valid={result.is_valid}, errors={len(errors)}, warnings={len(warnings)}")
    return result


def format_validation_failure(result: ImageValidationResult) -> str:
    """Combine errors, warnings and the remediation checklist into one message."""
    parts = ['Image validation failed:'] + result.errors
    if result.warnings:
        parts.append('\nWarnings:')
        parts.extend(result.warnings)
    parts.append('\nSuggestions for better results:')
    parts.extend(f'- {tip}' for tip in REMEDIATION_CHECKLIST)
    return '\n'.join(parts)


def _is_input_failure(result: ImageValidationResult, cfg: ImageValidationConfig) -> bool:
    if result.metadata is None:
        return True
    size = result.metadata.size
    return size < cfg.min_file_size or size > cfg.max_file_size


def validation_error(result: ImageValidationResult,
                     config: Optional[ImageValidationConfig] = None) -> ImageValidationError:
    """Build the error describing a failed validation result."""
    cfg = config or ImageValidationConfig()
    message = format_validation_failure(result)
    details = {
        'errors': result.errors,
        'warnings': result.warnings,
        'remediation': REMEDIATION_CHECKLIST,
        'validation': result.to_dict()
    }
    if _is_input_failure(result, cfg):
        return InputValidationError(message, details)
    return ImageQualityError(message, details)


def validate_image_or_raise(image_bytes: bytes,
                            config: Optional[ImageValidationConfig] = None) -> ImageValidationResult:
    """
    Validate an image and raise a descriptive error if it fails.

    Raises:
        InputValidationError: If the bytes cannot be decoded or the file size is out of range
        ImageQualityError: If resolution or sharpness is below the configured floor
    """
    cfg = config or ImageValidationConfig()
    result = validate_image(image_bytes, cfg)

    if not result.is_valid:
        raise validation_error(result, cfg)

    if result.warnings:
        logger.warning(f"Image validation warnings: {'; '.join(result.warnings)}")
    return result
