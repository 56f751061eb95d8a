"""
Spoken Transaction Parser

Turns a voice transcript such as "spent 45 dollars on groceries" into a
draft transaction. Keyword rules only: the draft is shown to the user
for review, never saved directly.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from couple_ledger.models.finance import TransactionType


_INCOME_MARKERS = ("earned", "received", "got paid", "income")

_AMOUNT_RE = re.compile(r"\$?(\d+(\.\d{1,2})?)\s?(dollars?|bucks?)?", re.IGNORECASE)
_FILLER_RE = re.compile(r"\b(spent|paid|for|on|at)\b")

# Ordered: the first category with a matching keyword wins
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Food": (
        "grocery", "groceries", "food", "restaurant", "dining",
        "lunch", "dinner", "breakfast", "meal", "takeout",
    ),
    "Transportation": (
        "gas", "fuel", "uber", "lyft", "taxi", "car", "bus",
        "train", "transport", "travel",
    ),
    "Shopping": (
        "clothes", "clothing", "shopping", "amazon", "online",
        "bought", "purchase",
    ),
    "Entertainment": (
        "movie", "netflix", "spotify", "entertainment", "game", "subscription",
    ),
    "Housing": ("rent", "mortgage", "housing", "apartment"),
    "Utilities": ("electric", "water", "internet", "phone", "bill", "utility"),
    "Income": (
        "salary", "paycheck", "income", "work", "job", "earned", "client",
    ),
}

DEFAULT_CATEGORY = "Other"


def _detect_category(text: str) -> str:
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def parse_transcript(text: str, today: Optional[date] = None) -> Optional[dict[str, Any]]:
    """
    Parse a spoken transaction.

    Returns a draft dict with type, amount, description, category and
    date, or None when no amount was spoken.
    """
    text = (text or "").lower()

    tx_type = TransactionType.EXPENSE
    if any(marker in text for marker in _INCOME_MARKERS):
        tx_type = TransactionType.INCOME

    match = _AMOUNT_RE.search(text)
    if not match:
        return None
    amount = Decimal(match.group(1))
    if amount == 0:
        return None

    remainder = _FILLER_RE.sub("", _AMOUNT_RE.sub("", text))
    words = [word for word in remainder.split() if len(word) > 2]
    if words:
        description = words[0].capitalize()
    else:
        description = "Income" if tx_type == TransactionType.INCOME else "Expense"

    return {
        "type": tx_type,
        "amount": amount,
        "description": description,
        "category": _detect_category(text),
        "date": today or date.today(),
    }
