"""Pipeline services."""

from .receipt_service import ReceiptService

__all__ = ['ReceiptService']
