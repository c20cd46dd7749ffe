"""Receipt model implementation."""

from datetime import datetime
from typing import List, Optional, Dict, Any
from uuid import NAMESPACE_URL, uuid5
import logging
import math

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

MAX_ITEM_PRICE = 10000.0

# Namespace for deterministic item ids
ITEM_ID_NAMESPACE = uuid5(NAMESPACE_URL, 'receipt-pipeline/extracted-item')


class OcrLine(BaseModel):
    """One recognized line of text in reading order."""

    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class ExtractedItem(BaseModel):
    """A purchased item extracted from a single receipt line."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(..., min_length=1, max_length=200)
    price: Optional[float] = None
    quantity: int = Field(default=1, ge=1)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    line_number: int = Field(..., ge=0)
    raw_text: str = ''

    @field_validator('price')
    @classmethod
    def validate_price(cls, v):
        """Prices must be finite and within (0, 10000]."""
        if v is None:
            return v
        if not math.isfinite(v) or v <= 0 or v > MAX_ITEM_PRICE:
            raise ValueError(f'Price out of range: {v}')
        return round(v, 2)

    @staticmethod
    def make_id(line_number: int, raw_text: str) -> str:
        """Stable id derived from the source line."""
        return str(uuid5(ITEM_ID_NAMESPACE, f'{line_number}:{raw_text}'))


class ParsedReceipt(BaseModel):
    """Structured data extracted from one receipt.

    Optional fields stay ``None`` when they could not be found.
    """

    model_config = ConfigDict(frozen=True)

    items: List[ExtractedItem] = Field(default_factory=list)
    total: Optional[float] = None
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    date: Optional[datetime] = None
    merchant_name: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    raw_text: str = ''

    @classmethod
    def empty(cls, raw_text: str = '') -> 'ParsedReceipt':
        """Receipt with nothing extracted."""
        return cls(raw_text=raw_text)

    @property
    def item_count(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the receipt to a JSON-friendly dictionary."""
        return self.model_dump(mode='json')
