from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence
import logging
import traceback
from datetime import datetime

from config.settings import ParserConfig
from models.receipt import ExtractedItem, OcrLine, ParsedReceipt

logger = logging.getLogger(__name__)


class BaseReceiptHandler(ABC):
    """Base class for receipt handlers.

    Subclasses implement the individual extractions. ``parse_receipt`` runs
    each of them in isolation and always returns a ``ParsedReceipt``: a failing
    extraction is logged and its field is left empty.
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        """Initialize the handler."""
        self.name = self.__class__.__name__
        self.config = config or ParserConfig()
        logger.debug(f"Initialized {self.name}")

    @abstractmethod
    def extract_items(self, lines: Sequence[OcrLine]) -> List[ExtractedItem]:
        """
        Extract line items from recognized lines.

        Args:
            lines: Recognized lines in reading order

        Returns:
            Items in source line order
        """
        pass

    @abstractmethod
    def extract_total(self, lines: Sequence[OcrLine]) -> Optional[float]:
        pass

    @abstractmethod
    def extract_subtotal(self, lines: Sequence[OcrLine]) -> Optional[float]:
        pass

    @abstractmethod
    def extract_tax(self, lines: Sequence[OcrLine]) -> Optional[float]:
        pass

    @abstractmethod
    def extract_date(self, lines: Sequence[OcrLine]) -> Optional[datetime]:
        pass

    @abstractmethod
    def extract_merchant_name(self, lines: Sequence[OcrLine]) -> Optional[str]:
        pass

    @abstractmethod
    def calculate_confidence(self, lines: Sequence[OcrLine], items: List[ExtractedItem]) -> float:
        """Single receipt-level confidence between 0 and 1."""
        pass

    def _run_extraction(self, name: str, func: Callable[..., Any], lines: Sequence[OcrLine], default: Any) -> Any:
        """Run one extraction, falling back to ``default`` if it raises."""
        try:
            return func(lines)
        except Exception as e:
            logger.error(f"{self.name}: {name} extraction failed: {str(e)}")
            logger.debug(traceback.format_exc())
            return default

    def check_totals(self, subtotal: Optional[float], tax: Optional[float], total: Optional[float]) -> None:
        """Log a warning when subtotal + tax does not add up to the total."""
        if subtotal is None or tax is None or total is None:
            return
        expected_total = round(subtotal + tax, 2)
        # Allow small rounding differences
        if abs(expected_total - total) > 0.02:
            logger.warning(
                f"Total mismatch: subtotal ({subtotal}) + tax ({tax}) "
                f"= {expected_total}, but total is {total}"
            )

    def parse_receipt(self, lines: Optional[Sequence[OcrLine]]) -> ParsedReceipt:
        """
        Parse recognized lines into a receipt.

        Args:
            lines: Recognized lines in reading order

        Returns:
            ParsedReceipt; fields that could not be extracted are None
        """
        try:
            lines = [line for line in (lines or []) if isinstance(line, OcrLine)]
            raw_text = '\n'.join(line.text for line in lines)
        except Exception as e:
            logger.error(f"{self.name}: unusable input: {str(e)}")
            return ParsedReceipt.empty()

        if not lines:
            return ParsedReceipt.empty(raw_text)

        items = self._run_extraction('items', self.extract_items, lines, [])
        total = self._run_extraction('total', self.extract_total, lines, None)
        subtotal = self._run_extraction('subtotal', self.extract_subtotal, lines, None)
        tax = self._run_extraction('tax', self.extract_tax, lines, None)
        date = self._run_extraction('date', self.extract_date, lines, None)
        merchant_name = self._run_extraction('merchant', self.extract_merchant_name, lines, None)
        confidence = self._run_extraction(
            'confidence', lambda ls: self.calculate_confidence(ls, items), lines, 0.0
        )

        self.check_totals(subtotal, tax, total)

        try:
            receipt = ParsedReceipt(
                items=items,
                total=total,
                subtotal=subtotal,
                tax=tax,
                date=date,
                merchant_name=merchant_name,
                confidence=min(max(confidence, 0.0), 1.0),
                raw_text=raw_text
            )
        except Exception as e:
            logger.error(f"{self.name}: could not assemble receipt: {str(e)}")
            logger.debug(traceback.format_exc())
            return ParsedReceipt.empty(raw_text)

        logger.info(
            f"Parsed receipt: {len(items)} items, total={total}, "
            f"merchant={merchant_name!r}, confidence={receipt.confidence:.2f}"
        )
        return receipt
