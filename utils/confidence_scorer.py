"""Confidence scoring for parsed receipts.

Combines OCR quality, parsing quality and field completeness into an
explainable report. Every function here returns a value for any input;
scoring never raises on incomplete receipts.
"""

import logging
from typing import List, Optional, Sequence

from config.settings import ParserConfig, ScoringWeights
from handlers import rules
from models.confidence import (
    Completeness,
    ConfidenceAnalysis,
    FieldConfidence,
    FieldStatus,
    OcrQuality,
    OverallStatus,
    ParsingQuality
)
from models.receipt import ExtractedItem, OcrLine, ParsedReceipt

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLDS = {
    'high': 0.85,
    'medium': 0.70,
    'low': 0.50,
}

OVERALL_THRESHOLDS = {
    'excellent': 0.9,
    'good': 0.75,
    'fair': 0.6,
}

# Used when a field has a value but its source line cannot be found
FALLBACK_CONFIDENCE = {
    'total': 0.5,
    'date': 0.5,
    'merchant': 0.6,
}

LOW_LINE_RATIO = 0.3
PRICED_ITEM_RATIO = 0.7

RECOMMENDATIONS = {
    'low_ocr': 'Low OCR confidence detected. Consider retaking the photo with better lighting and focus.',
    'many_low_lines': 'Many lines have low confidence. Ensure the receipt is flat and all text is clearly visible.',
    'no_items': 'No items were extracted. Verify the receipt format and ensure item names and prices are visible.',
    'missing_prices': 'Some items are missing price information. Ensure all prices are clearly visible.',
    'no_total': 'Total amount not found. Make sure the total is clearly visible in the image.',
    'no_date': 'Purchase date not found. Include the date section of the receipt in the image.',
    'no_merchant': 'Merchant name not detected. Include the store name/header in the image.',
    'low_overall': ('Overall confidence is low. For best results: use good lighting, hold camera steady, '
                    'ensure receipt is flat and fully visible.'),
}


def get_confidence_status(confidence: float) -> FieldStatus:
    """Band a field confidence into high/medium/low/very-low."""
    if confidence >= CONFIDENCE_THRESHOLDS['high']:
        return FieldStatus.HIGH
    if confidence >= CONFIDENCE_THRESHOLDS['medium']:
        return FieldStatus.MEDIUM
    if confidence >= CONFIDENCE_THRESHOLDS['low']:
        return FieldStatus.LOW
    return FieldStatus.VERY_LOW


def get_overall_status(confidence: float) -> OverallStatus:
    """Band an overall confidence into excellent/good/fair/poor."""
    if confidence >= OVERALL_THRESHOLDS['excellent']:
        return OverallStatus.EXCELLENT
    if confidence >= OVERALL_THRESHOLDS['good']:
        return OverallStatus.GOOD
    if confidence >= OVERALL_THRESHOLDS['fair']:
        return OverallStatus.FAIR
    return OverallStatus.POOR


def analyze_ocr_quality(lines: Sequence[OcrLine], low_confidence_cutoff: float = 0.6) -> OcrQuality:
    if not lines:
        return OcrQuality()
    avg_confidence = sum(line.confidence for line in lines) / len(lines)
    low_lines = sum(1 for line in lines if line.confidence < low_confidence_cutoff)
    return OcrQuality(
        avg_confidence=avg_confidence,
        low_confidence_lines=low_lines,
        total_lines=len(lines)
    )


def analyze_parsing_quality(items: Sequence[ExtractedItem]) -> ParsingQuality:
    if not items:
        return ParsingQuality()
    return ParsingQuality(
        items_extracted=len(items),
        items_with_prices=sum(1 for item in items if item.price is not None),
        avg_item_confidence=sum(item.confidence for item in items) / len(items)
    )


def analyze_completeness(receipt: ParsedReceipt, weights: Optional[ScoringWeights] = None) -> Completeness:
    """Weighted presence of total, date, merchant and items."""
    weights = weights or ScoringWeights()
    has_total = receipt.total is not None
    has_date = receipt.date is not None
    has_merchant = receipt.merchant_name is not None
    has_items = len(receipt.items) > 0

    score = 0.0
    if has_total:
        score += weights.total_presence
    if has_date:
        score += weights.date_presence
    if has_merchant:
        score += weights.merchant_presence
    if has_items:
        score += weights.items_presence

    return Completeness(
        has_total=has_total,
        has_date=has_date,
        has_merchant=has_merchant,
        has_items=has_items,
        score=min(score, 1.0)
    )


def _total_line(receipt: ParsedReceipt, lines: Sequence[OcrLine],
                parser_config: ParserConfig) -> Optional[OcrLine]:
    for line in reversed(lines):
        if not rules.is_total_candidate(line.text):
            continue
        amount = rules.find_labeled_amount(line.text, rules.TOTAL_LABELS, parser_config.max_receipt_amount)
        if amount is not None and abs(amount - receipt.total) < 0.005:
            return line
    return None


def _date_line(receipt: ParsedReceipt, lines: Sequence[OcrLine],
               parser_config: ParserConfig) -> Optional[OcrLine]:
    for line in lines[:parser_config.date_search_lines]:
        if receipt.date in rules.date_candidates(line.text, parser_config.date_formats):
            return line
    return None


def _merchant_line(receipt: ParsedReceipt, lines: Sequence[OcrLine],
                   parser_config: ParserConfig) -> Optional[OcrLine]:
    for line in lines[:parser_config.merchant_search_lines]:
        if line.text.strip() == receipt.merchant_name and rules.is_merchant_candidate(line.text):
            return line
    return None


def _field_entry(field: str, confidence: Optional[float]) -> FieldConfidence:
    if confidence is None:
        return FieldConfidence(field=field, confidence=0.0, status=FieldStatus.VERY_LOW, has_value=False)
    confidence = min(max(confidence, 0.0), 1.0)
    return FieldConfidence(
        field=field,
        confidence=confidence,
        status=get_confidence_status(confidence),
        has_value=True
    )


def calculate_field_confidence(receipt: ParsedReceipt, lines: Sequence[OcrLine],
                               parser_config: Optional[ParserConfig] = None) -> List[FieldConfidence]:
    """
    Per-field confidence for total, date, merchant and items.

    A present field takes the confidence of the line it was read from,
    located with the same rules the parser uses. Items use the mean item
    confidence. Absent fields score 0.
    """
    parser_config = parser_config or ParserConfig()
    locators = [
        ('total', receipt.total is not None, _total_line),
        ('date', receipt.date is not None, _date_line),
        ('merchant', receipt.merchant_name is not None, _merchant_line),
    ]

    fields = []
    for field, has_value, locate in locators:
        if not has_value:
            fields.append(_field_entry(field, None))
            continue
        line = locate(receipt, lines, parser_config)
        confidence = line.confidence if line is not None else FALLBACK_CONFIDENCE[field]
        fields.append(_field_entry(field, confidence))

    if receipt.items:
        avg_item_confidence = sum(item.confidence for item in receipt.items) / len(receipt.items)
        fields.append(_field_entry('items', avg_item_confidence))
    else:
        fields.append(_field_entry('items', None))

    return fields


def generate_recommendations(ocr_quality: OcrQuality, parsing_quality: ParsingQuality,
                             completeness: Completeness, overall: float) -> List[str]:
    """Fixed recommendations for each failing sub-score, in a stable order."""
    recommendations = []

    if ocr_quality.avg_confidence < CONFIDENCE_THRESHOLDS['medium']:
        recommendations.append(RECOMMENDATIONS['low_ocr'])

    if ocr_quality.total_lines and ocr_quality.low_confidence_lines / ocr_quality.total_lines > LOW_LINE_RATIO:
        recommendations.append(RECOMMENDATIONS['many_low_lines'])

    if parsing_quality.items_extracted == 0:
        recommendations.append(RECOMMENDATIONS['no_items'])

    if parsing_quality.items_with_prices < parsing_quality.items_extracted * PRICED_ITEM_RATIO:
        recommendations.append(RECOMMENDATIONS['missing_prices'])

    if not completeness.has_total:
        recommendations.append(RECOMMENDATIONS['no_total'])

    if not completeness.has_date:
        recommendations.append(RECOMMENDATIONS['no_date'])

    if not completeness.has_merchant:
        recommendations.append(RECOMMENDATIONS['no_merchant'])

    if overall < CONFIDENCE_THRESHOLDS['medium']:
        recommendations.append(RECOMMENDATIONS['low_overall'])

    return recommendations


def analyze_confidence(receipt: ParsedReceipt, lines: Optional[Sequence[OcrLine]] = None,
                       weights: Optional[ScoringWeights] = None,
                       parser_config: Optional[ParserConfig] = None) -> ConfidenceAnalysis:
    """
    Perform comprehensive confidence analysis.

    Args:
        receipt: Parsed receipt
        lines: Recognized lines the receipt was parsed from
        weights: Blend and completeness weights
        parser_config: Parser options used to locate field source lines

    Returns:
        ConfidenceAnalysis with overall score, status, field breakdown and recommendations
    """
    weights = weights or ScoringWeights()
    lines = list(lines or [])

    ocr_quality = analyze_ocr_quality(lines, weights.low_confidence_line_cutoff)
    parsing_quality = analyze_parsing_quality(receipt.items)
    completeness = analyze_completeness(receipt, weights)
    fields = calculate_field_confidence(receipt, lines, parser_config)

    overall = (
        ocr_quality.avg_confidence * weights.ocr_quality +
        parsing_quality.avg_item_confidence * weights.parsing_quality +
        completeness.score * weights.completeness
    )
    overall = min(max(overall, 0.0), 1.0)

    analysis = ConfidenceAnalysis(
        overall=overall,
        status=get_overall_status(overall),
        fields=fields,
        ocr_quality=ocr_quality,
        parsing_quality=parsing_quality,
        completeness=completeness,
        recommendations=generate_recommendations(ocr_quality, parsing_quality, completeness, overall)
    )
    logger.debug(f"Confidence analysis: overall={overall:.3f} status={analysis.status.value}")
    return analysis


def meets_quality_threshold(analysis: ConfidenceAnalysis, threshold: float = 0.5) -> bool:
    """True when the overall confidence reaches ``threshold``."""
    return analysis.overall >= threshold
