"""Receipt handler package.

Handlers turn recognized lines into a ``ParsedReceipt``. Every handler
implements the BaseReceiptHandler interface; the extraction heuristics
themselves live in ``handlers.rules``.
"""

from datetime import datetime
from typing import Optional

from config.settings import ParserConfig
from .base_handler import BaseReceiptHandler
from .generic_handler import GenericReceiptHandler


def create_parser(config: Optional[ParserConfig] = None,
                  reference_date: Optional[datetime] = None) -> BaseReceiptHandler:
    """Create the receipt parser used by the pipeline."""
    return GenericReceiptHandler(config=config, reference_date=reference_date)


__all__ = [
    'BaseReceiptHandler',
    'GenericReceiptHandler',
    'create_parser'
]
