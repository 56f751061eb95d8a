"""Receipt scanning and voice transcript agents."""

from couple_ledger.agents.receipt_agent import (
    ReceiptAnalysisError,
    ReceiptImageError,
    ReceiptScanAgent,
    image_to_base64,
    mock_receipt,
    suggest_category,
)
from couple_ledger.agents.transcript import parse_transcript

__all__ = [
    "ReceiptAnalysisError",
    "ReceiptImageError",
    "ReceiptScanAgent",
    "image_to_base64",
    "mock_receipt",
    "suggest_category",
    "parse_transcript",
]
