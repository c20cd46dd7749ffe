"""OCR module for receipt processing.

This module provides OCR engines for text extraction from receipt images.
Both Google Cloud Vision and Tesseract OCR are supported with a common interface,
and ``normalize_recognition`` turns either response shape into ``OcrLine``s.
"""

import logging
from typing import Optional, Dict, Any

from .base_ocr import (
    BaseOCR,
    EngineError,
    OCREngineType,
    RecognitionOptions,
    RecognitionResult,
    RecognizedLine
)
from .google_vision_ocr import GoogleVisionOCR
from .tesseract_ocr import TesseractOCR
from config.google_vision_config import GoogleVisionConfig
from .line_normalizer import normalize_recognition

logger = logging.getLogger(__name__)


def create_ocr_engine(
    engine_type: OCREngineType = OCREngineType.TESSERACT,
    credentials_path: Optional[str] = None,
    tesseract_cmd: Optional[str] = None,
    use_fallback: bool = True
) -> BaseOCR:
    """
    Create an OCR engine with optional fallback.

    Args:
        engine_type: Primary OCR engine to use
        credentials_path: Path to Google Vision credentials
        tesseract_cmd: Path to Tesseract executable
        use_fallback: Whether to use fallback engine

    Returns:
        Configured OCR engine

    Raises:
        EngineError: If the primary engine cannot be created
    """
    engine_type = OCREngineType(engine_type)

    fallback = None
    if use_fallback:
        if engine_type == OCREngineType.GOOGLE_VISION:
            try:
                fallback = TesseractOCR(tesseract_cmd=tesseract_cmd)
                logger.info("Created Tesseract fallback engine")
            except EngineError as e:
                logger.warning(f"Failed to create Tesseract fallback: {str(e)}")
        else:
            config = GoogleVisionConfig(credentials_path=credentials_path)
            if config.is_configured:
                fallback = GoogleVisionOCR(config=config)
                logger.info("Created Google Vision fallback engine")

    if engine_type == OCREngineType.GOOGLE_VISION:
        engine = GoogleVisionOCR(credentials_path=credentials_path, fallback_engine=fallback)
        logger.info("Created Google Vision primary engine")
    else:
        engine = TesseractOCR(tesseract_cmd=tesseract_cmd, fallback_engine=fallback)
        logger.info("Created Tesseract primary engine")

    return engine


def get_engine_status(engine: BaseOCR) -> Dict[str, Any]:
    """Get status information about an OCR engine."""
    status = {
        'engine_type': engine.engine_type.value,
        'has_fallback': bool(engine.fallback_engine)
    }

    if isinstance(engine, GoogleVisionOCR):
        status.update(engine.get_engine_status())
    elif isinstance(engine, TesseractOCR):
        status.update(engine.get_debug_info())

    return status


__all__ = [
    'BaseOCR',
    'EngineError',
    'OCREngineType',
    'RecognitionOptions',
    'RecognitionResult',
    'RecognizedLine',
    'GoogleVisionOCR',
    'TesseractOCR',
    'GoogleVisionConfig',
    'normalize_recognition',
    'create_ocr_engine',
    'get_engine_status'
]
