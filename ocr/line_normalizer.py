"""Normalize raw recognition-engine responses into ``OcrLine`` sequences.

Engines disagree on response shape. Some report structured lines with
per-line confidences, others only full text with one overall score, and
confidence scales may be 0-1 or 0-100. Everything downstream of this module
only ever sees ``OcrLine``.
"""

import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Union

from models.receipt import OcrLine
from ocr.base_ocr import RecognitionResult, RecognizedLine

logger = logging.getLogger(__name__)

RawResponse = Union[RecognitionResult, Mapping[str, Any], str]

# Confidence given to text-only output that carries no score at all
DEFAULT_TEXT_CONFIDENCE = 0.95


def normalize_confidence(value: Any, default: float = 0.0) -> float:
    """Coerce an engine confidence into [0, 1].

    Values above 1 are treated as percentages. Missing, negative or
    non-numeric values fall back to ``default``.
    """
    if value is None:
        return default
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(confidence) or confidence < 0:
        return default
    if confidence > 1.0:
        confidence = confidence / 100.0
    return min(confidence, 1.0)


def split_text_lines(text: str, confidence: float) -> List[OcrLine]:
    """Split flat text on line breaks, giving every line the same confidence."""
    lines = []
    for raw in (text or '').splitlines():
        stripped = raw.strip()
        if stripped:
            lines.append(OcrLine(text=stripped, confidence=confidence))
    return lines


def _line_fields(entry: Any):
    if isinstance(entry, RecognizedLine):
        return entry.text, entry.confidence
    if isinstance(entry, OcrLine):
        return entry.text, entry.confidence
    if isinstance(entry, Mapping):
        return entry.get('text', ''), entry.get('confidence')
    if isinstance(entry, str):
        return entry, None
    raise TypeError(f"Unsupported line entry: {type(entry).__name__}")


def _structured_lines(entries: Iterable[Any], fallback: float) -> List[OcrLine]:
    lines = []
    for entry in entries:
        text, confidence = _line_fields(entry)
        # An engine line may still contain embedded line breaks
        for part in str(text or '').splitlines():
            stripped = part.strip()
            if stripped:
                lines.append(OcrLine(
                    text=stripped,
                    confidence=normalize_confidence(confidence, default=fallback)
                ))
    return lines


def normalize_recognition(response: RawResponse,
                          default_confidence: float = DEFAULT_TEXT_CONFIDENCE) -> List[OcrLine]:
    """
    Convert any supported engine response into ordered ``OcrLine`` objects.

    Args:
        response: A ``RecognitionResult``, a mapping shaped like
            ``{'lines': [...], 'overallConfidence': x}`` or
            ``{'text': ..., 'confidence': x}``, or plain text.
        default_confidence: Confidence for lines when the response reports
            no per-line or overall score, as with plain text.

    Returns:
        Lines in reading order, blank lines removed.
    """
    if response is None:
        return []

    if isinstance(response, str):
        return split_text_lines(response, default_confidence)

    if isinstance(response, RecognitionResult):
        entries = response.lines
        text = response.text
        overall = response.overall_confidence
    elif isinstance(response, Mapping):
        entries = response.get('lines')
        text = response.get('text', '')
        overall = response.get('overall_confidence', response.get('overallConfidence', response.get('confidence')))
    else:
        raise TypeError(f"Unsupported recognition response: {type(response).__name__}")

    fallback = normalize_confidence(overall, default=default_confidence)
    if entries:
        lines = _structured_lines(entries, fallback)
        if lines:
            return lines

    # Flat-text engines: one overall score applies to every derived line
    lines = split_text_lines(text, fallback)
    if lines:
        logger.debug(f"Derived {len(lines)} lines from flat text with uniform confidence")
    return lines
