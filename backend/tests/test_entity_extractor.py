from datetime import date
from decimal import Decimal

from receipt_ai.services.document_ai.contracts import parse_entities
from receipt_ai.services.document_ai.extractor import extract_entities


def _money_entity(entity_type: str, units: str, nanos: int | None = None, currency: str | None = None) -> dict:
    money: dict = {"units": units}
    if nanos is not None:
        money["nanos"] = nanos
    if currency:
        money["currencyCode"] = currency
    return {"type": entity_type, "normalizedValue": {"moneyValue": money}}


def test_first_value_wins_for_scalar_fields():
    scratch = extract_entities(
        parse_entities(
            [
                {"type": "supplier_name", "mentionText": "First Shop"},
                {"type": "supplier_name", "mentionText": "Second Shop"},
                {"type": "receipt_date", "mentionText": "1/2/2024"},
                {"type": "receipt_date", "mentionText": "3/4/2024"},
                _money_entity("total_amount", "10"),
                _money_entity("total_amount", "99"),
            ]
        )
    )

    assert scratch.merchant_name == "First Shop"
    assert scratch.transaction_date == date(2024, 1, 2)
    assert scratch.total_amount == Decimal("10.00")
    assert scratch.date_sources == ["1/2/2024", "3/4/2024"]


def test_undecodable_date_lets_later_entity_fill_it():
    scratch = extract_entities(
        parse_entities(
            [
                {"type": "receipt_date", "mentionText": "yesterday"},
                {"type": "receipt_date", "mentionText": "05/06/2023"},
            ]
        )
    )
    assert scratch.transaction_date == date(2023, 5, 6)


def test_merchant_falls_back_to_normalized_text_and_collapses_spaces():
    scratch = extract_entities(
        parse_entities([{"type": "supplier_name", "normalizedValue": {"text": "  Corner   Cafe "}}])
    )
    assert scratch.merchant_name == "Corner Cafe"


def test_taxes_accumulate_and_currency_is_noted():
    scratch = extract_entities(
        parse_entities(
            [
                _money_entity("total_tax_amount", "5", currency="usd"),
                _money_entity("total_tax_amount", "3", 250000000, currency="EUR"),
            ]
        )
    )
    assert scratch.tax_amounts == [Decimal("5.00"), Decimal("3.25")]
    assert scratch.currency == "USD"


def test_untyped_unknown_and_malformed_entities_are_skipped():
    scratch = extract_entities(
        parse_entities(
            [
                {"mentionText": "no type"},
                {"type": "payment_type", "mentionText": "VISA"},
                {"type": "total_amount", "normalizedValue": {"moneyValue": {"units": "1", "nanos": 12.5}}},
                _money_entity("total_amount", "bad"),
                "not an entity",
                {
                    "type": "line_item",
                    "mentionText": "Soap",
                    "properties": [{"type": "line_item/amount", "normalizedValue": {"moneyValue": {"units": "2"}}}],
                },
            ]
        )
    )

    assert scratch.extracted_data == {}
    assert [item.description for item in scratch.line_items] == ["Soap"]


def test_line_items_keep_document_order():
    scratch = extract_entities(
        parse_entities(
            [
                {
                    "type": "line_item",
                    "mentionText": name,
                    "properties": [{"type": "line_item/amount", "normalizedValue": {"moneyValue": {"units": units}}}],
                }
                for name, units in (("Bread", "2"), ("Butter", "3"), ("Jam", "4"))
            ]
        )
    )
    assert [item.description for item in scratch.line_items] == ["Bread", "Butter", "Jam"]
