"""Pipeline output model."""

from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field

from models.confidence import ConfidenceAnalysis
from models.image import ImageMetadata, ImageValidationResult, PreprocessingMetadata
from models.receipt import OcrLine, ParsedReceipt


class ReceiptProcessingResult(BaseModel):
    """Everything a human reviewer needs for one processed receipt."""

    parsed_receipt: ParsedReceipt
    confidence_analysis: ConfidenceAnalysis
    processing_applied: List[str] = Field(default_factory=list)
    image_metadata: Optional[ImageMetadata] = None
    validation: Optional[ImageValidationResult] = None
    preprocessing: Optional[PreprocessingMetadata] = None
    ocr_lines: List[OcrLine] = Field(default_factory=list)
    engine: Optional[str] = None
    processing_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')
