import os
import time
import logging
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, List, Dict, Any, Sequence

from config.settings import PipelineOptions
from handlers import create_parser
from models.image import ImageMetadata, ImageValidationResult, PreprocessingMetadata
from models.processing import ReceiptProcessingResult
from models.receipt import OcrLine
from ocr import (
    BaseOCR,
    EngineError,
    OCREngineType,
    RecognitionOptions,
    create_ocr_engine,
    normalize_recognition
)
from utils.confidence_scorer import analyze_confidence
from utils.image_preprocessor import ImagePreprocessor
from utils.image_validator import (
    ImageQualityError,
    ImageValidationError,
    check_image_input,
    read_image_metadata,
    validate_image,
    validation_error
)
from utils.logging_config import log_with_context

logger = logging.getLogger(__name__)


class ReceiptService:
    """
    Service running the receipt pipeline:
    validate -> preprocess -> recognize -> normalize -> parse -> score.

    The service owns the engine it creates itself and releases it in
    ``close()``. An engine passed in stays owned by the caller.
    """

    def __init__(self,
                 engine: Optional[BaseOCR] = None,
                 options: Optional[PipelineOptions] = None,
                 engine_type: Optional[str] = None,
                 debug_mode: bool = False,
                 debug_output_dir: str = 'debug_output'):
        """
        Initialize the receipt service.

        Args:
            engine: Recognition engine to use
            options: Pipeline options (defaults to the documented defaults)
            engine_type: Engine to create when none is given ('tesseract' or
                'google_vision'; defaults to the OCR_ENGINE environment variable)
            debug_mode: Save intermediate preprocessing images
            debug_output_dir: Directory for debug output
        """
        self.options = options or PipelineOptions()
        self.debug_mode = debug_mode
        self.debug_output_dir = debug_output_dir
        self._owns_engine = engine is None
        self._engine = engine
        self._engine_type = engine_type or os.getenv('OCR_ENGINE', OCREngineType.TESSERACT.value)

    @property
    def engine(self) -> BaseOCR:
        """Recognition engine, created on first use."""
        if self._engine is None:
            self._engine = create_ocr_engine(OCREngineType(self._engine_type))
            logger.info(f"Created {self._engine.engine_type.value} engine for receipt service")
        return self._engine

    def validate(self, image_bytes: bytes, options: Optional[PipelineOptions] = None) -> ImageValidationResult:
        """
        Run the input contract and the quality gate.

        Raises:
            InputValidationError: For unusable input bytes
            ImageQualityError: For low quality images unless allow_low_quality is set
        """
        opts = options or self.options
        check_image_input(image_bytes, opts.validation.max_file_size)
        result = validate_image(image_bytes, opts.validation)
        if not result.is_valid:
            error = validation_error(result, opts.validation)
            if isinstance(error, ImageQualityError) and opts.allow_low_quality:
                logger.warning(f"Proceeding with low quality image: {'; '.join(result.errors)}")
            else:
                raise error
        elif result.warnings:
            logger.warning(f"Image validation warnings: {'; '.join(result.warnings)}")
        return result

    def analyze_lines(self, lines: Sequence[OcrLine],
                      options: Optional[PipelineOptions] = None) -> ReceiptProcessingResult:
        """Parse and score recognized lines. Never raises for any line content."""
        opts = options or self.options
        lines = list(lines or [])
        parser = create_parser(opts.parser)
        receipt = parser.parse_receipt(lines)
        analysis = analyze_confidence(receipt, lines, opts.scoring, opts.parser)
        return ReceiptProcessingResult(
            parsed_receipt=receipt,
            confidence_analysis=analysis,
            ocr_lines=lines
        )

    def process_image(self, image_bytes: bytes,
                      options: Optional[PipelineOptions] = None) -> ReceiptProcessingResult:
        """
        Process one receipt image.

        Args:
            image_bytes: JPEG, PNG or WebP bytes
            options: Per-call options overriding the service defaults

        Returns:
            ReceiptProcessingResult with the parsed receipt and its confidence analysis

        Raises:
            InputValidationError: If the input is not a usable image
            ImageQualityError: If the image fails the quality gate
            EngineError: If text recognition fails (retryable)
        """
        start_time = time.time()
        opts = options or self.options

        validation = None
        image_metadata: Optional[ImageMetadata] = None
        if opts.validate_image:
            validation = self.validate(image_bytes, opts)
            image_metadata = validation.metadata
        else:
            check_image_input(image_bytes, opts.validation.max_file_size)
            image_metadata = read_image_metadata(image_bytes)

        applied: List[str] = []
        preprocessing: Optional[PreprocessingMetadata] = None
        engine_bytes = bytes(image_bytes)
        if opts.preprocess:
            preprocessor = ImagePreprocessor(
                opts.preprocessing_config(),
                debug_mode=self.debug_mode,
                debug_output_dir=self.debug_output_dir
            )
            preprocessed = preprocessor.preprocess(image_bytes)
            engine_bytes = preprocessed.image_bytes
            applied = preprocessed.applied
            preprocessing = preprocessed.metadata

        recognition = self.engine.recognize(
            engine_bytes,
            RecognitionOptions(language=opts.language, page_segmentation_mode=opts.page_segmentation_mode)
        )
        lines = normalize_recognition(recognition)

        analyzed = self.analyze_lines(lines, opts)
        engine_used = recognition.engine or self.engine.engine_type
        result = analyzed.model_copy(update={
            'processing_applied': applied,
            'image_metadata': image_metadata,
            'validation': validation,
            'preprocessing': preprocessing,
            'engine': engine_used.value,
            'processing_time': time.time() - start_time
        })

        log_with_context(logger, logging.INFO, 'Processed receipt image', {
            'engine': result.engine,
            'lines': len(lines),
            'items': len(result.parsed_receipt.items),
            'overall_confidence': round(result.confidence_analysis.overall, 3),
            'status': result.confidence_analysis.status.value,
            'applied': applied,
            'processing_time': round(result.processing_time, 3)
        })
        return result

    def process_batch(self, images: Sequence[bytes], max_workers: int = 4,
                      options: Optional[PipelineOptions] = None) -> List[Dict[str, Any]]:
        """
        Process independent receipts concurrently.

        Returns one entry per image, in input order, with either a result or
        the error that stopped that image.
        """
        def failure(index: int, e: Exception, retryable: bool) -> Dict[str, Any]:
            return {
                'index': index,
                'success': False,
                'result': None,
                'error': str(e),
                'error_type': type(e).__name__,
                'retryable': retryable
            }

        def run(index: int, image_bytes: bytes) -> Dict[str, Any]:
            try:
                return {
                    'index': index,
                    'success': True,
                    'result': self.process_image(image_bytes, options),
                    'error': None
                }
            except (ImageValidationError, EngineError) as e:
                logger.error(f"Receipt {index} failed: {str(e).splitlines()[0]}")
                return failure(index, e, getattr(e, 'retryable', False))
            except Exception as e:
                # Failures stay local to their receipt
                logger.exception(f"Unexpected error processing receipt {index}")
                return failure(index, e, False)

        if not images:
            return []

        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            futures = [executor.submit(run, index, image) for index, image in enumerate(images)]
            results = [future.result() for future in futures]

        succeeded = sum(1 for entry in results if entry['success'])
        logger.info(f"Processed batch of {len(results)} receipts: {succeeded} succeeded")
        return results

    @staticmethod
    def calculate_overall_confidence(lines: Sequence[OcrLine]) -> float:
        """Mean line confidence as a percentage rounded to two decimals."""
        if not lines:
            return 0.0
        mean = sum(line.confidence for line in lines) / len(lines)
        return round(mean * 100, 2)

    def close(self) -> None:
        """Release the engine if this service created it."""
        if self._owns_engine and self._engine is not None:
            try:
                self._engine.close()
            except EngineError as e:
                logger.error(f"Error closing OCR engine: {str(e)}")
                logger.debug(traceback.format_exc())
            finally:
                self._engine = None

    def __enter__(self) -> 'ReceiptService':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
