"""Typed view of the Document AI entity graph.

Entities are validated one at a time so that a single malformed entity (or
line-item property) is dropped instead of invalidating the whole response.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

RECEIPT_DATE = "receipt_date"
TOTAL_AMOUNT = "total_amount"
SUPPLIER_NAME = "supplier_name"
TOTAL_TAX_AMOUNT = "total_tax_amount"
LINE_ITEM = "line_item"

LINE_ITEM_QUANTITY = "line_item/quantity"
LINE_ITEM_AMOUNT = "line_item/amount"
LINE_ITEM_DESCRIPTION = "line_item/description"


class _DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class DateValue(_DocumentModel):
    year: int | None = None
    month: int | None = None
    day: int | None = None

    @property
    def is_complete(self) -> bool:
        return self.year is not None and self.month is not None and self.day is not None


class MoneyValue(_DocumentModel):
    """``google.type.Money``: whole units as a string plus nanos (1e-9 units)."""

    units: str = "0"
    nanos: int | None = None
    currency_code: str | None = None

    @field_validator("units", mode="before")
    @classmethod
    def _units_as_text(cls, value: Any) -> Any:
        # proto3 JSON omits zero units; some exports send them as numbers.
        if value is None:
            return "0"
        if isinstance(value, bool):
            raise ValueError("units must be numeric text")
        if isinstance(value, (int, float)):
            return str(value)
        return value


class NormalizedValue(_DocumentModel):
    text: str | None = None
    money_value: MoneyValue | None = None
    date_value: DateValue | None = None


class RawEntity(_DocumentModel):
    type: str | None = None
    mention_text: str | None = None
    normalized_value: NormalizedValue | None = None
    confidence: float | None = None
    properties: tuple[RawEntity, ...] = ()

    @field_validator("mention_text", mode="before")
    @classmethod
    def _mention_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("properties", mode="before")
    @classmethod
    def _drop_malformed_properties(cls, value: Any) -> Any:
        if value is None:
            return ()
        if not isinstance(value, list):
            raise ValueError("properties must be a list")
        return tuple(parse_entities(value))

    @property
    def money_value(self) -> MoneyValue | None:
        if self.normalized_value is None:
            return None
        return self.normalized_value.money_value

    @property
    def date_value(self) -> DateValue | None:
        if self.normalized_value is None:
            return None
        return self.normalized_value.date_value

    @property
    def normalized_text(self) -> str | None:
        if self.normalized_value is None:
            return None
        return self.normalized_value.text


RawEntity.model_rebuild()


def parse_entities(raw_entities: list[Any]) -> list[RawEntity]:
    """Validate each raw entity independently, skipping the malformed ones."""
    entities: list[RawEntity] = []
    for index, raw in enumerate(raw_entities):
        if not isinstance(raw, dict):
            logger.warning("Skipping entity #%s: expected an object, got %s", index, type(raw).__name__)
            continue
        try:
            entities.append(RawEntity.model_validate(raw))
        except ValidationError as exc:
            logger.warning(
                "Skipping malformed entity #%s (type=%r): %s",
                index,
                raw.get("type"),
                exc.errors(include_url=False),
            )
    return entities
