import logging
from typing import List, Optional, Sequence
from datetime import datetime

from pydantic import ValidationError

from config.settings import ParserConfig
from handlers.base_handler import BaseReceiptHandler
from handlers import rules
from models.receipt import ExtractedItem, OcrLine

logger = logging.getLogger(__name__)


class GenericReceiptHandler(BaseReceiptHandler):
    """Handler for receipts of any store layout.

    Works on the flat sequence of recognized lines using the named rules
    in ``handlers.rules``.
    """

    def __init__(self, config: Optional[ParserConfig] = None, reference_date: Optional[datetime] = None):
        """
        Initialize the handler.

        Args:
            config: Parser options
            reference_date: "Today" for the date sanity window (defaults to now)
        """
        super().__init__(config)
        self.reference_date = reference_date

    def extract_items(self, lines: Sequence[OcrLine]) -> List[ExtractedItem]:
        """Extract items from lines that carry a plausible price."""
        items = []
        for line_number, line in enumerate(lines):
            text = line.text.strip()

            # Filtering takes precedence over price detection
            if rules.is_non_item_line(text):
                continue

            price_match = rules.find_price(text, self.config.max_item_price)
            if not price_match:
                continue

            name = rules.clean_item_name(text[:price_match.start], self.config.currency_symbol)
            if len(name) < 2 or line.confidence < self.config.min_item_confidence:
                continue

            # Below the price floor the item is kept but trusted less
            confidence = line.confidence
            if confidence < self.config.min_price_confidence:
                confidence = round(confidence * confidence / self.config.min_price_confidence, 4)
                logger.debug(f"Low-confidence price on line {line_number}: {text}")

            try:
                items.append(ExtractedItem(
                    id=ExtractedItem.make_id(line_number, text),
                    name=name[:200],
                    price=price_match.value,
                    quantity=rules.detect_quantity(text),
                    confidence=confidence,
                    line_number=line_number,
                    raw_text=text
                ))
            except ValidationError as e:
                logger.warning(f"Skipping invalid item on line {line_number}: {str(e)}")

        logger.debug(f"Extracted {len(items)} items from {len(lines)} lines")
        return items

    def find_total_line(self, lines: Sequence[OcrLine]) -> Optional[int]:
        """Index of the line providing the total; the bottom-most match wins."""
        for index in range(len(lines) - 1, -1, -1):
            text = lines[index].text
            if not rules.is_total_candidate(text):
                continue
            if rules.find_labeled_amount(text, rules.TOTAL_LABELS, self.config.max_receipt_amount) is not None:
                return index
        return None

    def find_labeled_line(self, lines: Sequence[OcrLine], label) -> Optional[int]:
        """Index of the first line where ``label`` carries a plausible amount."""
        for index, line in enumerate(lines):
            if rules.find_labeled_amount(line.text, [label], self.config.max_receipt_amount) is not None:
                return index
        return None

    def extract_total(self, lines: Sequence[OcrLine]) -> Optional[float]:
        index = self.find_total_line(lines)
        if index is None:
            return None
        return rules.find_labeled_amount(lines[index].text, rules.TOTAL_LABELS, self.config.max_receipt_amount)

    def extract_subtotal(self, lines: Sequence[OcrLine]) -> Optional[float]:
        index = self.find_labeled_line(lines, rules.SUBTOTAL_LABEL)
        if index is None:
            return None
        return rules.find_labeled_amount(lines[index].text, [rules.SUBTOTAL_LABEL], self.config.max_receipt_amount)

    def extract_tax(self, lines: Sequence[OcrLine]) -> Optional[float]:
        index = self.find_labeled_line(lines, rules.TAX_LABEL)
        if index is None:
            return None
        return rules.find_labeled_amount(lines[index].text, [rules.TAX_LABEL], self.config.max_receipt_amount)

    def find_date_line(self, lines: Sequence[OcrLine]) -> Optional[int]:
        """Index of the first header line holding a plausible date."""
        reference = self.reference_date or datetime.now()
        for index, line in enumerate(lines[:self.config.date_search_lines]):
            if rules.find_date(line.text, self.config.date_formats, reference):
                return index
        return None

    def extract_date(self, lines: Sequence[OcrLine]) -> Optional[datetime]:
        """Extract the purchase date from the receipt header."""
        index = self.find_date_line(lines)
        if index is None:
            return None
        reference = self.reference_date or datetime.now()
        return rules.find_date(lines[index].text, self.config.date_formats, reference)

    def find_merchant_line(self, lines: Sequence[OcrLine]) -> Optional[int]:
        """Index of the best-scoring merchant candidate; earliest wins ties."""
        best_index = None
        best_score = None
        for index, line in enumerate(lines[:self.config.merchant_search_lines]):
            if not rules.is_merchant_candidate(line.text):
                continue
            if line.confidence <= self.config.merchant_min_line_confidence:
                continue
            score = rules.score_merchant_candidate(line.text, line.confidence, index)
            if best_score is None or score > best_score:
                best_index, best_score = index, score
        return best_index

    def extract_merchant_name(self, lines: Sequence[OcrLine]) -> Optional[str]:
        """Extract the merchant name from the receipt header."""
        index = self.find_merchant_line(lines)
        if index is None:
            return None
        return lines[index].text.strip()

    def calculate_confidence(self, lines: Sequence[OcrLine], items: List[ExtractedItem]) -> float:
        """
        Blend mean line confidence, item count and mean item confidence.

        The item count signal saturates at ``target_item_count`` items.
        """
        if not lines:
            return 0.0
        weights = self.config.confidence_weights

        ocr_confidence = sum(line.confidence for line in lines) / len(lines)
        count_confidence = min(len(items) / weights.target_item_count, 1.0) if items else 0.0
        item_confidence = sum(item.confidence for item in items) / len(items) if items else 0.0

        confidence = (
            ocr_confidence * weights.ocr +
            count_confidence * weights.item_count +
            item_confidence * weights.item_confidence
        )
        return min(max(confidence, 0.0), 1.0)
