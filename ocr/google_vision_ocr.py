"""Google Cloud Vision OCR implementation."""

import logging
import time
from typing import Dict, List, Any, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import vision

from .base_ocr import BaseOCR, EngineError, OCREngineType, RecognitionOptions, RecognitionResult
from config.google_vision_config import GoogleVisionConfig, GoogleVisionConfigError

logger = logging.getLogger(__name__)

# Tesseract language codes mapped to the BCP-47 hints Vision expects
LANGUAGE_HINTS = {
    'eng': 'en',
    'deu': 'de',
    'fra': 'fr',
    'spa': 'es',
    'ita': 'it',
    'por': 'pt',
    'nld': 'nl',
    'jpn': 'ja',
    'kor': 'ko',
    'chi_sim': 'zh',
}


class GoogleVisionOCR(BaseOCR):
    """Google Cloud Vision OCR implementation.

    Vision reports the full text plus confidences per block, not per line,
    so results come back as flat text with one overall confidence. The
    client is created lazily and released by ``close()``.
    """

    engine_type = OCREngineType.GOOGLE_VISION

    def __init__(self, credentials_path: Optional[str] = None, fallback_engine: Optional[BaseOCR] = None,
                 max_retries: Optional[int] = None, timeout: Optional[float] = None,
                 config: Optional[GoogleVisionConfig] = None):
        """
        Initialize Google Vision OCR.

        Args:
            credentials_path: Optional path to credentials file
            fallback_engine: Optional fallback OCR engine
            max_retries: Maximum number of retries for API calls
            timeout: Timeout for API calls in seconds
            config: Prepared configuration (overrides environment)
        """
        super().__init__(fallback_engine)
        self.config = config or GoogleVisionConfig(credentials_path=credentials_path)
        self.max_retries = max_retries if max_retries is not None else self.config.max_retries
        self.timeout = timeout if timeout is not None else self.config.timeout
        self.last_processing_time = 0.0
        self._client = None
        self._last_error = None

    @property
    def client(self) -> vision.ImageAnnotatorClient:
        """Get Vision client with retry logic."""
        if not self._client:
            attempts = max(1, self.max_retries)
            for attempt in range(attempts):
                try:
                    self._client = self.config.create_client()
                    break
                except GoogleVisionConfigError as e:
                    raise EngineError(
                        f"Google Vision is not configured: {str(e)}",
                        self.engine_type,
                        {**e.details, 'error_type': 'configuration',
                         'config_error_type': e.details.get('error_type')}
                    ) from e
                except Exception as e:
                    logger.warning(f"Attempt {attempt + 1}/{attempts} to initialize client failed: {str(e)}")
                    if attempt == attempts - 1:
                        raise EngineError(
                            f"Failed to initialize Google Vision client after {attempts} attempts: {str(e)}",
                            self.engine_type,
                            {'error_type': 'initialization', 'last_error': str(e)}
                        ) from e
                    time.sleep(1)
        return self._client

    def _recognize(self, image_bytes: bytes, options: RecognitionOptions) -> RecognitionResult:
        """Internal implementation of recognize."""
        start_time = time.time()
        image = vision.Image(content=image_bytes)
        hint = LANGUAGE_HINTS.get(options.language, options.language)
        image_context = vision.ImageContext(language_hints=[hint])

        attempts = max(1, self.max_retries)
        response = None
        for attempt in range(attempts):
            try:
                response = self.client.document_text_detection(
                    image=image,
                    image_context=image_context,
                    timeout=self.timeout
                )
                break
            except (google_exceptions.GoogleAPICallError, google_exceptions.RetryError) as e:
                self._last_error = str(e)
                if attempt == attempts - 1:
                    error_type = 'timeout' if isinstance(e, google_exceptions.DeadlineExceeded) else 'api_error'
                    raise EngineError(
                        f"Google Vision request failed: {str(e)}",
                        self.engine_type,
                        {'error_type': error_type, 'attempts': attempts}
                    ) from e
                logger.warning(f"Attempt {attempt + 1}/{attempts} failed: {str(e)}")
                time.sleep(1)

        if response.error.message:
            self._last_error = response.error.message
            raise EngineError(
                f'Error detecting text: {response.error.message}',
                self.engine_type,
                {'error_type': 'api_error', 'api_error': response.error.message}
            )

        annotation = response.full_text_annotation
        blocks = [block for page in annotation.pages for block in page.blocks]
        confidence = self._estimate_confidence(blocks)

        self.last_processing_time = time.time() - start_time
        logger.debug(f"Vision returned {len(blocks)} blocks in {self.last_processing_time:.2f}s")

        return RecognitionResult(
            lines=None,
            text=annotation.text or '',
            overall_confidence=confidence,
            engine=self.engine_type,
            details={'processing_time': self.last_processing_time, 'blocks': len(blocks)}
        )

    @staticmethod
    def _estimate_confidence(elements: List[Any]) -> float:
        """Mean confidence over annotation elements that report one."""
        confidences = [e.confidence for e in elements if e.confidence]
        if not confidences:
            return 0.0
        return sum(confidences) / len(confidences)

    def close(self) -> None:
        """Close the Vision client transport."""
        if self._client is not None:
            try:
                self._client.transport.close()
            finally:
                self._client = None
        super().close()

    def get_last_error(self) -> Optional[str]:
        """Get the last error message."""
        return self._last_error

    def get_engine_status(self) -> Dict[str, Any]:
        """Get current engine status."""
        return {
            'engine_type': self.engine_type.value,
            'is_initialized': self._client is not None,
            'has_fallback': self.fallback_engine is not None,
            'last_error': self._last_error,
            'last_processing_time': self.last_processing_time,
            'max_retries': self.max_retries,
            'timeout': self.timeout
        }
