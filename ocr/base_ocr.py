"""Base OCR engine interface."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class OCREngineType(Enum):
    """Supported OCR engine types."""
    GOOGLE_VISION = "google_vision"
    TESSERACT = "tesseract"


@dataclass
class RecognitionOptions:
    """Options passed through to the recognition engine."""
    language: str = 'eng'
    page_segmentation_mode: int = 6


@dataclass
class RecognizedLine:
    """A line as reported by an engine, before normalization."""
    text: str
    confidence: Optional[float] = None


@dataclass
class RecognitionResult:
    """Container for a raw engine response.

    Engines that cannot report per-line confidences leave ``lines`` as
    ``None`` and fill ``text`` plus ``overall_confidence`` instead.
    """
    lines: Optional[List[RecognizedLine]] = None
    text: str = ''
    overall_confidence: Optional[float] = None
    engine: Optional[OCREngineType] = None
    details: Dict[str, Any] = field(default_factory=dict)


class EngineError(Exception):
    """Recognition failed or timed out. Safe to retry."""

    retryable = True

    def __init__(self, message: str, engine: Optional[OCREngineType], details: Dict[str, Any] = None):
        super().__init__(message)
        self.engine = engine
        self.details = details or {}


class BaseOCR(ABC):
    """Abstract base class for OCR engines.

    An engine instance is an owned resource: callers release it with
    ``close()`` or by using it as a context manager. Calls to ``recognize``
    on one instance are serialized.
    """

    engine_type: OCREngineType = None

    def __init__(self, fallback_engine: Optional['BaseOCR'] = None):
        """
        Initialize OCR engine.

        Args:
            fallback_engine: Optional fallback OCR engine to use if primary fails
        """
        self.fallback_engine = fallback_engine
        self._lock = threading.Lock()
        self._closed = False

    @abstractmethod
    def _recognize(self, image_bytes: bytes, options: RecognitionOptions) -> RecognitionResult:
        """
        Run the engine on encoded image bytes.

        Raises:
            EngineError: If text extraction fails
        """
        pass

    def recognize(self, image_bytes: bytes, options: Optional[RecognitionOptions] = None) -> RecognitionResult:
        """Recognize text with fallback support."""
        if self._closed:
            raise EngineError(
                f"{self.engine_type.value} engine has been closed",
                self.engine_type,
                {'error_type': 'closed'}
            )
        options = options or RecognitionOptions()
        with self._lock:
            return self.try_with_fallback('recognize', image_bytes, options)

    def try_with_fallback(self, method: str, *args, **kwargs) -> Any:
        """
        Try a method with fallback support.

        Args:
            method: Name of method to try
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Result from primary or fallback engine

        Raises:
            EngineError: If both primary and fallback fail
        """
        try:
            return getattr(self, f"_{method}")(*args, **kwargs)
        except EngineError as e:
            if not self.fallback_engine:
                raise
            logger.warning(f"{self.engine_type.value} failed, trying fallback: {str(e)}")
            try:
                return getattr(self.fallback_engine, method)(*args, **kwargs)
            except Exception as fallback_error:
                raise EngineError(
                    f"Both primary and fallback engines failed. Primary: {str(e)}, Fallback: {str(fallback_error)}",
                    self.engine_type,
                    {'primary_error': str(e), 'fallback_error': str(fallback_error)}
                ) from fallback_error

    def close(self) -> None:
        """Release engine resources, including the fallback engine."""
        self._closed = True
        if self.fallback_engine:
            self.fallback_engine.close()

    def __enter__(self) -> 'BaseOCR':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
