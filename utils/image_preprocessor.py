"""Image preprocessing module for OCR optimization."""

import os
import logging
from typing import List, Optional

import cv2
import numpy as np

from config.settings import PreprocessingConfig
from models.image import ImageSize, PreprocessingMetadata, PreprocessingResult
from utils.image_validator import InputValidationError

logger = logging.getLogger(__name__)

SHARPEN_KERNEL = np.array([
    [0, -1, 0],
    [-1, 5, -1],
    [0, -1, 0]
], dtype=np.float32)


class ImagePreprocessor:
    """Deterministic cleanup pipeline applied before OCR.

    Stages run in a fixed order and each applied stage is recorded by name:
    grayscale, downscale, deskew, noise-reduction, clahe, normalization,
    sharpen.
    """

    def __init__(self, config: Optional[PreprocessingConfig] = None,
                 debug_mode: bool = False, debug_output_dir: str = 'debug_output'):
        """
        Initialize the image preprocessor.

        Args:
            config: Stage toggles (defaults to the quick level)
            debug_mode: Whether to save intermediate processing steps
            debug_output_dir: Directory to save debug output
        """
        self.config = config or PreprocessingConfig()
        self.debug_mode = debug_mode
        self.debug_output_dir = debug_output_dir

        if debug_mode:
            os.makedirs(debug_output_dir, exist_ok=True)

    def decode(self, image_bytes: bytes) -> np.ndarray:
        """Decode image bytes into a BGR array."""
        if not isinstance(image_bytes, (bytes, bytearray)) or not image_bytes:
            raise InputValidationError("Cannot preprocess empty or non-bytes image data",
                                       {'error_type': 'decode_error'})
        try:
            nparr = np.frombuffer(bytes(image_bytes), np.uint8)
            img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
        except cv2.error as e:
            raise InputValidationError(f"Failed to decode image: {str(e)}",
                                       {'error_type': 'decode_error'}) from e
        if img is None:
            raise InputValidationError("Failed to decode image: unsupported or corrupt data",
                                       {'error_type': 'decode_error'})
        return img

    def preprocess(self, image_bytes: bytes) -> PreprocessingResult:
        """
        Preprocess an image for better OCR results.

        Args:
            image_bytes: Encoded image data

        Returns:
            PreprocessingResult with PNG bytes, applied stages and size metadata

        Raises:
            InputValidationError: If the image cannot be decoded or re-encoded
        """
        cfg = self.config
        applied: List[str] = []

        img = self.decode(image_bytes)
        original_height, original_width = img.shape[:2]
        if self.debug_mode:
            self._save_debug_image(img, '01_original.png')

        # Convert to grayscale
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        applied.append('grayscale')
        self._debug_stage(gray, 'grayscale')

        # Downscale high-resolution images; never upscale
        height, width = gray.shape[:2]
        if cfg.enable_downscale and max(width, height) > cfg.downscale_threshold:
            new_width = max(1, int(round(width * cfg.downscale_ratio)))
            new_height = max(1, int(round(height * cfg.downscale_ratio)))
            if new_width < width or new_height < height:
                gray = cv2.resize(gray, (new_width, new_height), interpolation=cv2.INTER_AREA)
                applied.append('downscale')
                logger.debug(f"Downscaled image from {width}x{height} to {new_width}x{new_height}")
                self._debug_stage(gray, 'downscale')

        if cfg.enable_deskew:
            angle = self.estimate_skew(gray)
            if abs(angle) >= cfg.min_deskew_angle:
                gray = self.deskew(gray, angle)
                logger.debug(f"Corrected skew of {angle:.2f} degrees")
            applied.append('deskew')
            self._debug_stage(gray, 'deskew')

        if cfg.enable_noise_reduction:
            gray = cv2.fastNlMeansDenoising(gray, None, cfg.denoise_strength, 7, 21)
            applied.append('noise-reduction')
            self._debug_stage(gray, 'noise-reduction')

        if cfg.enable_clahe:
            grid = cfg.clahe_tile_grid_size
            clahe = cv2.createCLAHE(clipLimit=cfg.clahe_clip_limit, tileGridSize=(grid, grid))
            gray = clahe.apply(gray)
            applied.append('clahe')
            self._debug_stage(gray, 'clahe')

        if cfg.enable_normalization:
            gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)
            applied.append('normalization')
            self._debug_stage(gray, 'normalization')

        if cfg.enable_sharpen:
            gray = cv2.filter2D(gray, -1, SHARPEN_KERNEL)
            applied.append('sharpen')
            self._debug_stage(gray, 'sharpen')

        success, encoded = cv2.imencode('.png', gray)
        if not success:
            raise InputValidationError("Failed to encode preprocessed image",
                                       {'error_type': 'encode_error'})

        processed_height, processed_width = gray.shape[:2]
        logger.info(f"Preprocessed image {original_width}x{original_height} -> "
                    f"{processed_width}x{processed_height}, stages: {', '.join(applied)}")

        return PreprocessingResult(
            image_bytes=encoded.tobytes(),
            applied=applied,
            metadata=PreprocessingMetadata(
                original_size=ImageSize(width=original_width, height=original_height),
                processed_size=ImageSize(width=processed_width, height=processed_height),
                format='png'
            )
        )

    @staticmethod
    def estimate_skew(gray: np.ndarray) -> float:
        """
        Estimate the text skew of a grayscale image in degrees.

        Dark pixels are treated as text and enclosed in a minimum-area
        rectangle. Positive angles mean text runs downhill to the right.
        Returns 0.0 when there is no text to measure.
        """
        thresh = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)[1]
        points = cv2.findNonZero(thresh)
        if points is None or len(points) < 5:
            return 0.0

        box = cv2.boxPoints(cv2.minAreaRect(points))
        dx, dy = box[1] - box[0]
        if dx == 0 and dy == 0:
            return 0.0

        # Any box edge works; fold the angle into (-45, 45]
        angle = float(np.degrees(np.arctan2(dy, dx)))
        angle = (angle + 90.0) % 180.0 - 90.0
        if angle > 45.0:
            angle -= 90.0
        elif angle <= -45.0:
            angle += 90.0
        return angle

    @staticmethod
    def deskew(gray: np.ndarray, angle: float) -> np.ndarray:
        """Rotate the image by ``angle`` degrees about its center, keeping its size."""
        h, w = gray.shape[:2]
        matrix = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), angle, 1.0)
        return cv2.warpAffine(gray, matrix, (w, h), flags=cv2.INTER_CUBIC, borderMode=cv2.BORDER_REPLICATE)

    def _debug_stage(self, image: np.ndarray, stage: str) -> None:
        if self.debug_mode:
            self._save_debug_image(image, f'stage_{stage}.png')

    def _save_debug_image(self, image: np.ndarray, filename: str) -> None:
        """Save an intermediate processing step image for debugging."""
        try:
            path = os.path.join(self.debug_output_dir, filename)
            cv2.imwrite(path, image)
            logger.debug(f"Saved debug image: {path}")
        except (cv2.error, OSError) as e:
            logger.error(f"Error saving debug image: {str(e)}")


def preprocess_image(image_bytes: bytes, config: Optional[PreprocessingConfig] = None) -> PreprocessingResult:
    """Preprocess image bytes with a one-off preprocessor."""
    return ImagePreprocessor(config).preprocess(image_bytes)
