"""Data models for the receipt pipeline."""

from .receipt import OcrLine, ExtractedItem, ParsedReceipt
from .image import ImageMetadata, ImageQuality, ImageValidationResult, PreprocessingResult
from .confidence import ConfidenceAnalysis, FieldConfidence, OverallStatus, FieldStatus
from .processing import ReceiptProcessingResult

__all__ = [
    'OcrLine',
    'ExtractedItem',
    'ParsedReceipt',
    'ImageMetadata',
    'ImageQuality',
    'ImageValidationResult',
    'PreprocessingResult',
    'ConfidenceAnalysis',
    'FieldConfidence',
    'OverallStatus',
    'FieldStatus',
    'ReceiptProcessingResult'
]
