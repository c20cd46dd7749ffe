"""Confidence analysis models."""

from enum import Enum
from typing import List, Dict, Any

from pydantic import BaseModel, Field


class OverallStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class FieldStatus(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very-low"


class FieldConfidence(BaseModel):
    field: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    status: FieldStatus
    has_value: bool


class OcrQuality(BaseModel):
    avg_confidence: float = 0.0
    low_confidence_lines: int = 0
    total_lines: int = 0


class ParsingQuality(BaseModel):
    items_extracted: int = 0
    items_with_prices: int = 0
    avg_item_confidence: float = 0.0


class Completeness(BaseModel):
    has_total: bool = False
    has_date: bool = False
    has_merchant: bool = False
    has_items: bool = False
    score: float = 0.0


class ConfidenceAnalysis(BaseModel):
    """Explainable, per-field breakdown of how far to trust an extraction."""

    overall: float = Field(..., ge=0.0, le=1.0)
    status: OverallStatus
    fields: List[FieldConfidence] = Field(default_factory=list)
    ocr_quality: OcrQuality
    parsing_quality: ParsingQuality
    completeness: Completeness
    recommendations: List[str] = Field(default_factory=list)

    def field(self, name: str) -> FieldConfidence:
        """Look up the confidence entry for one field."""
        for entry in self.fields:
            if entry.field == name:
                return entry
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')
