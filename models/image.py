"""Image validation and preprocessing result models."""

from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field


class ImageMetadata(BaseModel):
    """Basic facts about a decoded image."""

    width: int = 0
    height: int = 0
    format: str = 'unknown'
    size: int = 0
    has_alpha: bool = False


class ImageQuality(BaseModel):
    """Quality metrics computed on the grayscale pixel buffer."""

    sharpness: Optional[float] = None
    contrast: Optional[float] = None
    brightness: Optional[float] = None


class ImageValidationResult(BaseModel):
    """Outcome of the image quality gate."""

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    metadata: Optional[ImageMetadata] = None
    quality: ImageQuality = Field(default_factory=ImageQuality)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')


class ImageSize(BaseModel):
    width: int
    height: int


class PreprocessingMetadata(BaseModel):
    original_size: ImageSize
    processed_size: ImageSize
    format: str


class PreprocessingResult(BaseModel):
    """Cleaned image bytes plus the ordered list of applied stages."""

    image_bytes: bytes
    applied: List[str] = Field(default_factory=list)
    metadata: PreprocessingMetadata
