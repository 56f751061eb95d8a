"""
Receipt Scanning Agent

Reads merchant, total, date, category and line items off a receipt photo
with Gemini's vision model.

BOUNDARIES:
- The agent only PROPOSES data. Nothing is saved until the user reviews
  the draft transaction built from it.
- Without a Gemini API key the agent runs in mock mode and returns a
  fixed sample receipt, so the scanning flow can be exercised offline.
"""

import base64
import json
import struct
from datetime import date
from decimal import Decimal
from io import BytesIO
from typing import Optional

import google.generativeai as genai
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from couple_ledger.config import get_settings
from couple_ledger.models.finance import LineItem, ReceiptData


class ReceiptImageError(Exception):
    """The uploaded file is not a usable receipt image."""
    pass


class ReceiptAnalysisError(Exception):
    """The receipt could not be read."""

    def __init__(self, message: str = "Failed to analyze receipt image"):
        super().__init__(message)


# Pillow format name -> MIME type
_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}

# Ordered: the first matching rule wins
_CATEGORY_RULES: list[tuple[tuple[str, ...], str]] = [
    (("grocery", "market", "store"), "Groceries"),
    (("restaurant", "cafe", "food"), "Dining Out"),
    (("pharmacy", "medical", "doctor"), "Healthcare"),
    (("transport", "travel", "uber"), "Transportation"),
    (("amazon", "shop", "mart"), "Shopping"),
]

RECEIPT_PROMPT = """You are reading a shopping receipt for a household finance app.

Extract the following and respond with ONLY a JSON object in this exact format:
{"merchant": "store name", "amount": 123.45, "date": "YYYY-MM-DD", "category": "Groceries", "items": [{"name": "item", "price": 1.5, "quantity": 1}]}

Rules:
- "amount" is the final total paid
- "price" is the unit price of one item
- Use null for the date if it is not printed on the receipt
- category should be one of: Groceries, Dining Out, Healthcare, Transportation, Shopping, Entertainment, Utilities, Other
- Do not invent items that are not on the receipt"""


def image_to_base64(image_bytes: bytes) -> str:
    """
    Validate an uploaded image and encode it as a data URL.

    Raises:
        ReceiptImageError: Unreadable, unsupported or oversized image
    """
    settings = get_settings().app

    if not image_bytes:
        raise ReceiptImageError("The uploaded file is empty")
    if len(image_bytes) > settings.max_upload_size_bytes:
        raise ReceiptImageError(
            f"Image is larger than {settings.max_upload_size_mb} MB"
        )

    try:
        with Image.open(BytesIO(image_bytes)) as img:
            img.verify()
            image_format = (img.format or "").upper()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, struct.error) as e:
        # Pillow reports damaged chunks as SyntaxError or struct.error
        raise ReceiptImageError(f"Could not read image: {e}")

    allowed = {fmt.upper() for fmt in settings.supported_formats_list}
    if "JPG" in allowed:
        allowed.add("JPEG")
    if image_format not in allowed or image_format not in _MIME_TYPES:
        raise ReceiptImageError(
            f"Unsupported image format: {image_format or 'unknown'}. "
            f"Supported: {settings.supported_image_formats}"
        )

    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{_MIME_TYPES[image_format]};base64,{encoded}"


def _split_data_url(image_base64: str) -> tuple[str, str]:
    """(mime type, bare base64 content) for a data URL or bare base64."""
    if "," not in image_base64:
        return "image/jpeg", image_base64
    header, content = image_base64.split(",", 1)
    mime = header.removeprefix("data:").split(";")[0] or "image/jpeg"
    return mime, content


def suggest_category(merchant: str, items: Optional[list[str]] = None) -> str:
    """
    Rule-based category from the merchant name.

    Item names are accepted for callers that have them; only the merchant
    decides the category.
    """
    merchant_lower = (merchant or "").lower()
    for keywords, category in _CATEGORY_RULES:
        if any(keyword in merchant_lower for keyword in keywords):
            return category
    return "Other"


def mock_receipt(today: Optional[date] = None) -> ReceiptData:
    """The fixed sample receipt returned in mock mode."""
    return ReceiptData(
        merchant="Sample Store",
        amount=Decimal("1250.75"),
        receipt_date=today or date.today(),
        category="Groceries",
        items=[
            LineItem(name="Fresh Vegetables", price=Decimal("350.50"), quantity=1),
            LineItem(name="Bread", price=Decimal("120.25"), quantity=2),
            LineItem(name="Milk", price=Decimal("85.00"), quantity=1),
            LineItem(name="Rice", price=Decimal("495.00"), quantity=1),
            LineItem(name="Eggs", price=Decimal("200.00"), quantity=1),
        ],
    )


class ReceiptScanAgent:
    """
    Gemini-backed receipt reader.

    Call `analyze_receipt_image` with a data URL from `image_to_base64`.
    """

    def __init__(self, model: Optional["genai.GenerativeModel"] = None):
        self._settings = get_settings().gemini
        self._model = model
        if self._model is None and not self._settings.mock_mode:
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @property
    def mock_mode(self) -> bool:
        return self._model is None

    async def analyze_receipt_image(self, image_base64: str) -> ReceiptData:
        """
        Read a receipt image.

        Raises:
            ReceiptAnalysisError: The model call failed or returned
                something that isn't a receipt
        """
        mime_type, content = _split_data_url(image_base64)

        if self.mock_mode:
            return mock_receipt()

        try:
            image_bytes = base64.b64decode(content)
            response = await self._model.generate_content_async([
                RECEIPT_PROMPT,
                {"mime_type": mime_type, "data": image_bytes},
            ])
            return self._parse_response(response.text)
        except ReceiptAnalysisError:
            raise
        except Exception as e:
            raise ReceiptAnalysisError() from e

    @staticmethod
    def _parse_response(text: str) -> ReceiptData:
        text = text.strip()
        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            raise ReceiptAnalysisError()

        try:
            data = json.loads(text[start:end])
            items = [
                {**item, "quantity": item.get("quantity") or 1}
                for item in data.get("items") or []
            ]
            receipt = ReceiptData.model_validate({**data, "items": items})
        except (ValueError, ValidationError) as e:
            raise ReceiptAnalysisError() from e

        if not receipt.category:
            receipt.category = suggest_category(receipt.merchant)
        return receipt
