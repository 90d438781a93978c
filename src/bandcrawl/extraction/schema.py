"""
Validation schema for the LLM's product JSON.

The model answers in loosely typed JSON: prices arrive as "15,000원",
lists as null, titles under `productName`. Every field here has an
explicit default, and the before-validators coerce what can be coerced
instead of rejecting the whole response.
"""
import re
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

NUMBER_RE = re.compile(r"-?\d[\d,]*")


def coerce_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """Best-effort integer from numbers or strings like "15,000원"."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = NUMBER_RE.search(value)
        if match:
            return int(match.group(0).replace(",", ""))
    return default


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return []


class PriceOptionSchema(BaseModel):
    """One price tier as returned by the model."""

    model_config = ConfigDict(extra="ignore")

    quantity: int = 1
    price: int = 0
    description: str = ""

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, value):
        return coerce_int(value, 1) or 1

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, value):
        return coerce_int(value, 0)

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value):
        return _optional_text(value) or ""


class ProductSchema(BaseModel):
    """A single product object."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = Field(default="제목 없음", validation_alias=AliasChoices("title", "productName"))
    base_price: int = Field(default=0, validation_alias=AliasChoices("basePrice", "base_price", "price"))
    price_options: List[PriceOptionSchema] = Field(
        default_factory=list, validation_alias=AliasChoices("priceOptions", "price_options"),
    )
    quantity_text: Optional[str] = Field(default=None, validation_alias=AliasChoices("quantityText", "quantity_text"))
    category: str = "기타"
    status: str = "판매중"
    tags: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    pickup_info: Optional[str] = Field(default=None, validation_alias=AliasChoices("pickupInfo", "pickup_info"))
    pickup_date: Optional[str] = Field(default=None, validation_alias=AliasChoices("pickupDate", "pickup_date"))
    pickup_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("pickupType", "pickup_type"))
    stock_quantity: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("stockQuantity", "stock_quantity"),
    )
    item_number: Optional[int] = Field(default=None, validation_alias=AliasChoices("itemNumber", "item_number"))
    multiple_products: bool = Field(
        default=False, validation_alias=AliasChoices("multipleProducts", "multiple_products"),
    )

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value):
        return _optional_text(value) or "제목 없음"

    @field_validator("base_price", mode="before")
    @classmethod
    def _base_price(cls, value):
        return coerce_int(value, 0)

    @field_validator("price_options", mode="before")
    @classmethod
    def _price_options(cls, value):
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value):
        return _optional_text(value) or "기타"

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        return _optional_text(value) or "판매중"

    @field_validator("tags", "features", mode="before")
    @classmethod
    def _lists(cls, value):
        return _string_list(value)

    @field_validator("quantity_text", "pickup_info", "pickup_date", "pickup_type", mode="before")
    @classmethod
    def _texts(cls, value):
        return _optional_text(value)

    @field_validator("stock_quantity", "item_number", mode="before")
    @classmethod
    def _optional_ints(cls, value):
        return coerce_int(value, None)

    @field_validator("multiple_products", mode="before")
    @classmethod
    def _flag(cls, value):
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)


class ExtractionResponse(ProductSchema):
    """Top-level response: a product, or a multi-product envelope."""

    products: List[ProductSchema] = Field(default_factory=list)
    common_pickup_info: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("commonPickupInfo", "common_pickup_info"),
    )
    common_pickup_date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("commonPickupDate", "common_pickup_date"),
    )
    common_pickup_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("commonPickupType", "common_pickup_type"),
    )

    @field_validator("products", mode="before")
    @classmethod
    def _products(cls, value):
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("common_pickup_info", "common_pickup_date", "common_pickup_type", mode="before")
    @classmethod
    def _common_texts(cls, value):
        return _optional_text(value)
