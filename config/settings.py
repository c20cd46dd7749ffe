"""Configuration settings for the receipt processing pipeline.

Every option has a documented default. ``PipelineOptions.from_env`` reads
overrides from the environment (a ``.env`` file is loaded by the CLI).
"""

import os
import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_DATE_FORMATS = ['MM/DD/YYYY', 'DD/MM/YYYY', 'YYYY-MM-DD']


class PreprocessingLevel(str, Enum):
    """Named bundles of image cleanup stages."""
    QUICK = "quick"
    STANDARD = "standard"
    FULL = "full"


class ReceiptConfidenceWeights(BaseModel):
    """Blend used by the parser for the single receipt-level confidence."""

    ocr: float = Field(default=0.4, ge=0.0, le=1.0)
    item_count: float = Field(default=0.3, ge=0.0, le=1.0)
    item_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    # Item count at which the item-count signal saturates
    target_item_count: int = Field(default=5, ge=1)


class ParserConfig(BaseModel):
    """Options for the receipt parsing engine."""

    min_item_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    min_price_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    currency_symbol: str = '$'
    date_formats: List[str] = Field(default_factory=lambda: list(DEFAULT_DATE_FORMATS))
    date_search_lines: int = Field(default=10, ge=1)
    merchant_search_lines: int = Field(default=8, ge=1)
    merchant_min_line_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    max_item_price: float = Field(default=10000.0, gt=0)
    max_receipt_amount: float = Field(default=100000.0, gt=0)
    confidence_weights: ReceiptConfidenceWeights = Field(default_factory=ReceiptConfidenceWeights)

    @field_validator('date_formats')
    @classmethod
    def validate_date_formats(cls, v):
        """Each format must use MM, DD and YY/YYYY tokens."""
        for fmt in v:
            upper = fmt.upper()
            if 'MM' not in upper or 'DD' not in upper or 'YY' not in upper:
                raise ValueError(f"Unsupported date format: {fmt}")
        return v


class ImageValidationConfig(BaseModel):
    """Thresholds for the image quality gate."""

    min_width: int = Field(default=600, ge=1)
    min_height: int = Field(default=400, ge=1)
    min_file_size: int = Field(default=50 * 1024, ge=0)  # 50KB
    max_file_size: int = Field(default=10 * 1024 * 1024, ge=1)  # 10MB
    min_sharpness: float = Field(default=10.0, ge=0.0)  # Laplacian variance
    min_contrast: float = Field(default=30.0, ge=0.0)  # intensity standard deviation

    @model_validator(mode='after')
    def validate_size_bounds(self):
        if self.min_file_size > self.max_file_size:
            raise ValueError("min_file_size cannot exceed max_file_size")
        return self


class PreprocessingConfig(BaseModel):
    """Per-stage toggles for the image preprocessor.

    Grayscale conversion always runs. Downscaling only applies to images
    larger than ``downscale_threshold`` on either side.
    """

    enable_downscale: bool = True
    downscale_threshold: int = Field(default=2000, ge=1)
    downscale_ratio: float = Field(default=0.5, gt=0.0, le=1.0)
    enable_deskew: bool = False
    # Skew below this many degrees is left alone
    min_deskew_angle: float = Field(default=0.5, ge=0.0, le=45.0)
    enable_noise_reduction: bool = False
    enable_clahe: bool = False
    enable_normalization: bool = False
    enable_sharpen: bool = False
    clahe_clip_limit: float = Field(default=2.0, gt=0.0)
    clahe_tile_grid_size: int = Field(default=8, ge=1)
    denoise_strength: float = Field(default=10.0, gt=0.0)

    @classmethod
    def for_level(cls, level) -> 'PreprocessingConfig':
        """Build the stage toggles for a named preprocessing level."""
        level = PreprocessingLevel(level)
        if level == PreprocessingLevel.QUICK:
            return cls()
        if level == PreprocessingLevel.STANDARD:
            return cls(enable_noise_reduction=True, enable_clahe=True)
        return cls(
            enable_deskew=True,
            enable_noise_reduction=True,
            enable_clahe=True,
            enable_normalization=True,
            enable_sharpen=True
        )


class ScoringWeights(BaseModel):
    """Weights and cutoffs used by the confidence scorer."""

    ocr_quality: float = Field(default=0.3, ge=0.0, le=1.0)
    parsing_quality: float = Field(default=0.3, ge=0.0, le=1.0)
    completeness: float = Field(default=0.4, ge=0.0, le=1.0)
    total_presence: float = Field(default=0.3, ge=0.0, le=1.0)
    date_presence: float = Field(default=0.2, ge=0.0, le=1.0)
    merchant_presence: float = Field(default=0.2, ge=0.0, le=1.0)
    items_presence: float = Field(default=0.3, ge=0.0, le=1.0)
    low_confidence_line_cutoff: float = Field(default=0.6, ge=0.0, le=1.0)

    @model_validator(mode='after')
    def validate_sums(self):
        blend = self.ocr_quality + self.parsing_quality + self.completeness
        presence = (self.total_presence + self.date_presence +
                    self.merchant_presence + self.items_presence)
        if abs(blend - 1.0) > 1e-6:
            raise ValueError(f"Overall blend weights must sum to 1.0, got {blend}")
        if abs(presence - 1.0) > 1e-6:
            raise ValueError(f"Completeness weights must sum to 1.0, got {presence}")
        return self


class PipelineOptions(BaseModel):
    """Options for one run of the receipt pipeline."""

    parser: ParserConfig = Field(default_factory=ParserConfig)
    validation: ImageValidationConfig = Field(default_factory=ImageValidationConfig)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    preprocessing_level: PreprocessingLevel = PreprocessingLevel.QUICK
    preprocessing: Optional[PreprocessingConfig] = None
    preprocess: bool = True
    validate_image: bool = Field(default=True, alias='validate')
    allow_low_quality: bool = False
    language: str = 'eng'
    page_segmentation_mode: int = Field(default=6, ge=0, le=13)

    model_config = {'populate_by_name': True}

    def preprocessing_config(self) -> PreprocessingConfig:
        """Explicit stage toggles win over the named level."""
        if self.preprocessing is not None:
            return self.preprocessing
        return PreprocessingConfig.for_level(self.preprocessing_level)

    @classmethod
    def from_env(cls) -> 'PipelineOptions':
        """Create options from RECEIPT_* environment variables."""
        parser_kwargs = {}
        if os.getenv('RECEIPT_MIN_ITEM_CONFIDENCE'):
            parser_kwargs['min_item_confidence'] = float(os.getenv('RECEIPT_MIN_ITEM_CONFIDENCE'))
        if os.getenv('RECEIPT_MIN_PRICE_CONFIDENCE'):
            parser_kwargs['min_price_confidence'] = float(os.getenv('RECEIPT_MIN_PRICE_CONFIDENCE'))
        if os.getenv('RECEIPT_CURRENCY_SYMBOL'):
            parser_kwargs['currency_symbol'] = os.getenv('RECEIPT_CURRENCY_SYMBOL')
        if os.getenv('RECEIPT_DATE_FORMATS'):
            parser_kwargs['date_formats'] = [
                fmt.strip() for fmt in os.getenv('RECEIPT_DATE_FORMATS').split(',') if fmt.strip()
            ]

        options = cls(
            parser=ParserConfig(**parser_kwargs),
            preprocessing_level=os.getenv('RECEIPT_PREPROCESSING_LEVEL', PreprocessingLevel.QUICK.value),
            validate=_env_flag('RECEIPT_VALIDATE', True),
            preprocess=_env_flag('RECEIPT_PREPROCESS', True),
            allow_low_quality=_env_flag('RECEIPT_ALLOW_LOW_QUALITY', False),
            language=os.getenv('RECEIPT_OCR_LANGUAGE', 'eng')
        )
        logger.debug(f"Loaded pipeline options from environment: {options.model_dump()}")
        return options


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')
