"""
Tesseract OCR engine implementation.
"""

import io
import logging
import time
from collections import OrderedDict
from typing import Dict, List, Any, Optional

import pytesseract
from PIL import Image, UnidentifiedImageError

from .base_ocr import BaseOCR, EngineError, OCREngineType, RecognitionOptions, RecognitionResult, RecognizedLine

logger = logging.getLogger(__name__)


class TesseractOCR(BaseOCR):
    """
    OCR engine using Tesseract.

    Words reported by ``image_to_data`` are grouped back into lines, so this
    engine returns structured lines with per-line confidences.
    """

    engine_type = OCREngineType.TESSERACT

    def __init__(self,
                 tesseract_cmd: Optional[str] = None,
                 oem: int = 3,
                 timeout: float = 60.0,
                 fallback_engine: Optional[BaseOCR] = None):
        """
        Initialize Tesseract OCR.

        Args:
            tesseract_cmd: Path to Tesseract executable (optional)
            oem: Tesseract OCR engine mode
            timeout: Seconds before a Tesseract run is aborted (0 disables)
            fallback_engine: Optional fallback OCR engine
        """
        super().__init__(fallback_engine)

        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

        self.oem = oem
        self.timeout = timeout
        self.last_confidence = 0.0
        self.last_processing_time = 0.0

        # Verify Tesseract installation
        try:
            version = pytesseract.get_tesseract_version()
            logger.info(f"Successfully initialized Tesseract OCR {version}")
        except Exception as e:
            logger.error(f"Failed to initialize Tesseract OCR: {str(e)}")
            raise EngineError(
                "Tesseract not properly installed or configured",
                self.engine_type,
                {'error_type': 'initialization', 'error': str(e)}
            ) from e

    def build_config(self, options: RecognitionOptions) -> str:
        """Command line flags for one Tesseract run."""
        return f'--psm {options.page_segmentation_mode} --oem {self.oem}'

    def _recognize(self, image_bytes: bytes, options: RecognitionOptions) -> RecognitionResult:
        """Internal implementation of recognize."""
        start_time = time.time()
        try:
            pil_image = Image.open(io.BytesIO(image_bytes))
            pil_image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise EngineError(
                f"Tesseract could not read image: {str(e)}",
                self.engine_type,
                {'error_type': 'input_validation'}
            ) from e

        try:
            ocr_data = pytesseract.image_to_data(
                pil_image,
                lang=options.language,
                config=self.build_config(options),
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as e:
            raise EngineError(
                f"Error extracting text with Tesseract: {str(e)}",
                self.engine_type,
                {'error_type': 'processing'}
            ) from e
        except RuntimeError as e:
            # pytesseract signals its timeout with a bare RuntimeError
            raise EngineError(
                f"Tesseract failed: {str(e)}",
                self.engine_type,
                {'error_type': 'timeout' if 'timeout' in str(e).lower() else 'processing'}
            ) from e

        lines = self.group_lines(ocr_data)
        confidences = [line.confidence for line in lines]
        overall = sum(confidences) / len(confidences) if confidences else 0.0

        self.last_confidence = overall
        self.last_processing_time = time.time() - start_time
        logger.debug(f"Tesseract found {len(lines)} lines in {self.last_processing_time:.2f}s")

        return RecognitionResult(
            lines=lines,
            text='\n'.join(line.text for line in lines),
            overall_confidence=overall,
            engine=self.engine_type,
            details={'processing_time': self.last_processing_time}
        )

    @staticmethod
    def group_lines(ocr_data: Dict[str, List[Any]]) -> List[RecognizedLine]:
        """
        Group word-level ``image_to_data`` output into lines.

        Words with a confidence of -1 are layout entries and are skipped.
        A line's confidence is the mean of its word confidences on a 0-1 scale.
        """
        grouped = OrderedDict()
        for i in range(len(ocr_data.get('text', []))):
            word = str(ocr_data['text'][i]).strip()
            try:
                conf = float(ocr_data['conf'][i])
            except (TypeError, ValueError):
                conf = -1.0
            if not word or conf < 0:
                continue

            key = (ocr_data['page_num'][i], ocr_data['block_num'][i],
                   ocr_data['par_num'][i], ocr_data['line_num'][i])
            grouped.setdefault(key, []).append((word, conf))

        lines = []
        for words in grouped.values():
            text = ' '.join(word for word, _ in words)
            confidence = sum(conf for _, conf in words) / len(words) / 100.0
            lines.append(RecognizedLine(text=text, confidence=min(confidence, 1.0)))
        return lines

    def get_debug_info(self) -> Dict[str, Any]:
        """Get debug information about the last OCR run."""
        return {
            'engine': self.engine_type.value,
            'confidence': self.last_confidence,
            'processing_time': self.last_processing_time,
            'oem': self.oem,
            'timeout': self.timeout
        }
