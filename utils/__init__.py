"""Utility modules for receipt processing.

This package contains the image quality gate, the image preprocessor,
the confidence scorer and the logging setup used by the pipeline.
"""

from .image_validator import (
    ImageValidationError,
    InputValidationError,
    ImageQualityError,
    check_image_input,
    read_image_metadata,
    validate_image,
    validate_image_or_raise
)
from .image_preprocessor import ImagePreprocessor, preprocess_image
from .confidence_scorer import analyze_confidence, meets_quality_threshold
from .logging_config import setup_logging, log_with_context

__all__ = [
    'ImageValidationError',
    'InputValidationError',
    'ImageQualityError',
    'check_image_input',
    'read_image_metadata',
    'validate_image',
    'validate_image_or_raise',
    'ImagePreprocessor',
    'preprocess_image',
    'analyze_confidence',
    'meets_quality_threshold',
    'setup_logging',
    'log_with_context'
]
