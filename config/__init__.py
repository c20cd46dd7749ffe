"""Configuration for the receipt pipeline."""

from .settings import (
    ParserConfig,
    ImageValidationConfig,
    PreprocessingConfig,
    PreprocessingLevel,
    PipelineOptions,
    ScoringWeights,
    ReceiptConfidenceWeights
)

__all__ = [
    'ParserConfig',
    'ImageValidationConfig',
    'PreprocessingConfig',
    'PreprocessingLevel',
    'PipelineOptions',
    'ScoringWeights',
    'ReceiptConfidenceWeights'
]
