"""Tests for receipt image handling, the receipt agent and the transcript parser."""

import asyncio
import base64
from datetime import date
from decimal import Decimal
from io import BytesIO
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from couple_ledger.agents import (
    ReceiptAnalysisError,
    ReceiptImageError,
    ReceiptScanAgent,
    image_to_base64,
    mock_receipt,
    parse_transcript,
    suggest_category,
)
from couple_ledger.models import TransactionType, line_items_total


def image_bytes(fmt="PNG", size=(20, 30)):
    buffer = BytesIO()
    Image.new("RGB", size, color="white").save(buffer, format=fmt)
    return buffer.getvalue()


def gemini_model(text):
    model = MagicMock()
    model.generate_content_async = AsyncMock(return_value=SimpleNamespace(text=text))
    return model


class TestImageToBase64:

    def test_png_becomes_data_url(self):
        raw = image_bytes("PNG")
        url = image_to_base64(raw)
        assert url.startswith("data:image/png;base64,")
        assert base64.b64decode(url.split(",", 1)[1]) == raw

    def test_jpeg_accepted(self):
        assert image_to_base64(image_bytes("JPEG")).startswith("data:image/jpeg;base64,")

    def test_unsupported_format_rejected(self):
        with pytest.raises(ReceiptImageError, match="Unsupported"):
            image_to_base64(image_bytes("GIF"))

    def test_garbage_rejected(self):
        with pytest.raises(ReceiptImageError):
            image_to_base64(b"definitely not an image")

    def test_damaged_png_rejected(self):
        raw = bytearray(image_bytes("PNG"))
        idat = raw.index(b"IDAT")
        length = int.from_bytes(raw[idat - 4:idat], "big")
        raw[idat + 4 + length] ^= 0xFF  # first CRC byte

        with pytest.raises(ReceiptImageError, match="Could not read image"):
            image_to_base64(bytes(raw))

    def test_empty_rejected(self):
        with pytest.raises(ReceiptImageError, match="empty"):
            image_to_base64(b"")

    def test_oversized_rejected(self, monkeypatch):
        monkeypatch.setenv("MAX_UPLOAD_SIZE_MB", "1")
        with pytest.raises(ReceiptImageError, match="larger than 1 MB"):
            image_to_base64(b"\0" * (1024 * 1024 + 1))


class TestSuggestCategory:

    @pytest.mark.parametrize("merchant,expected", [
        ("Fresh Grocery Hub", "Groceries"),
        ("Farmers Market", "Groceries"),
        ("Corner Cafe", "Dining Out"),
        ("City Pharmacy", "Healthcare"),
        ("Uber Trip", "Transportation"),
        ("Amazon", "Shopping"),
        ("QuickMart", "Shopping"),
        ("ACME Ltd", "Other"),
        ("", "Other"),
    ])
    def test_keyword_rules(self, merchant, expected):
        assert suggest_category(merchant) == expected

    def test_first_rule_wins(self):
        # "store" (groceries) is checked before "food" (dining)
        assert suggest_category("Food Store") == "Groceries"


class TestReceiptScanAgent:

    def test_mock_mode_without_api_key(self):
        agent = ReceiptScanAgent()
        assert agent.mock_mode

        receipt = asyncio.run(agent.analyze_receipt_image("data:image/png;base64,AAAA"))
        assert receipt.merchant == "Sample Store"
        assert receipt.amount == Decimal("1250.75")
        assert receipt.receipt_date == date.today()
        assert receipt.category == "Groceries"
        assert [i.name for i in receipt.items] == [
            "Fresh Vegetables", "Bread", "Milk", "Rice", "Eggs",
        ]

    def test_mock_receipt_items_do_not_add_up_to_total(self):
        receipt = mock_receipt(date(2024, 1, 1))
        assert line_items_total(receipt.items) == Decimal("1370.75")
        assert receipt.amount == Decimal("1250.75")

    def test_parses_model_json(self):
        model = gemini_model(
            'Here you go:\n```json\n{"merchant": "Bean Cafe", "amount": 7.5, '
            '"date": "2024-02-03", "category": null, '
            '"items": [{"name": "Latte", "price": 3.75, "quantity": 2}]}\n```'
        )
        agent = ReceiptScanAgent(model=model)

        receipt = asyncio.run(agent.analyze_receipt_image(
            "data:image/png;base64," + base64.b64encode(b"img").decode()
        ))

        assert not agent.mock_mode
        assert receipt.merchant == "Bean Cafe"
        assert receipt.amount == Decimal("7.5")
        assert receipt.receipt_date == date(2024, 2, 3)
        assert receipt.category == "Dining Out"
        assert receipt.items[0].total == Decimal("7.50")

        prompt, blob = model.generate_content_async.call_args.args[0]
        assert "JSON" in prompt
        assert blob == {"mime_type": "image/png", "data": b"img"}

    def test_missing_quantity_defaults_to_one(self):
        model = gemini_model('{"merchant": "X", "amount": 2, "items": [{"name": "Pen", "price": 2, "quantity": null}]}')
        receipt = asyncio.run(ReceiptScanAgent(model=model).analyze_receipt_image("AAAA"))
        assert receipt.items[0].quantity == 1

    @pytest.mark.parametrize("text", [
        "I could not read this receipt.",
        '{"merchant": "X"}',
        '{"merchant": "X", "amount": -3}',
        "{not json}",
    ])
    def test_unusable_responses_raise(self, text):
        agent = ReceiptScanAgent(model=gemini_model(text))
        with pytest.raises(ReceiptAnalysisError, match="Failed to analyze receipt image"):
            asyncio.run(agent.analyze_receipt_image("AAAA"))

    def test_model_failure_raises(self):
        model = MagicMock()
        model.generate_content_async = AsyncMock(side_effect=RuntimeError("quota"))
        with pytest.raises(ReceiptAnalysisError):
            asyncio.run(ReceiptScanAgent(model=model).analyze_receipt_image("AAAA"))


class TestParseTranscript:

    TODAY = date(2024, 6, 1)

    def test_expense_with_dollars(self):
        draft = parse_transcript("Spent 45 dollars on groceries", self.TODAY)
        assert draft == {
            "type": TransactionType.EXPENSE,
            "amount": Decimal("45"),
            "description": "Groceries",
            "category": "Food",
            "date": self.TODAY,
        }

    def test_income(self):
        draft = parse_transcript("I received $1200.50 salary", self.TODAY)
        assert draft["type"] == TransactionType.INCOME
        assert draft["amount"] == Decimal("1200.50")
        assert draft["category"] == "Income"
        assert draft["description"] == "Received"

    def test_got_paid_is_income(self):
        assert parse_transcript("got paid 300", self.TODAY)["type"] == TransactionType.INCOME

    def test_category_keywords(self):
        assert parse_transcript("paid 30 bucks for netflix", self.TODAY)["category"] == "Entertainment"
        assert parse_transcript("uber ride 12", self.TODAY)["category"] == "Transportation"
        assert parse_transcript("paid 900 rent", self.TODAY)["category"] == "Housing"

    def test_description_skips_filler_words(self):
        draft = parse_transcript("paid 30 bucks for netflix", self.TODAY)
        assert draft["description"] == "Netflix"

    def test_unknown_category_is_other(self):
        assert parse_transcript("spent 20 on a gift", self.TODAY)["category"] == "Other"

    def test_fallback_description(self):
        assert parse_transcript("spent 20", self.TODAY)["description"] == "Expense"
        assert parse_transcript("income 20", self.TODAY)["description"] == "Income"

    def test_no_amount_returns_none(self):
        assert parse_transcript("bought some shoes", self.TODAY) is None
        assert parse_transcript("", self.TODAY) is None
        assert parse_transcript("spent 0 dollars", self.TODAY) is None
