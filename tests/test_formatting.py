import json

from supermarket_deals.formatting import (
    format_deals_json,
    format_deals_table,
    format_price,
    format_price_per_litre,
    truncate,
)
from supermarket_deals.models import SearchMeta
from supermarket_deals.normalize import to_deal
from tests.helpers import make_offer

WIDTHS = [55, 14, 10, 10, 11, 21]


def sample_deal(**overrides):
    fields = {
        "id": 21916812,
        "product": {"name": "Coca-Cola Zero"},
        "advertisers": [{"name": "Lidl"}],
        "price": 1.29,
        "description": "Coca-Cola Zero Sugar 2 l",
        "volume": 2,
        "unit": {"shortName": "l"},
        "validityDates": [{"from": "2024-05-06T00:00:00Z", "to": "2024-05-11T00:00:00Z"}],
    }
    fields.update(overrides)
    return to_deal(make_offer(**fields), "cola")


def test_empty_table_is_single_line():
    assert format_deals_table([]) == "No matching deals found."


def test_table_layout():
    lines = format_deals_table([sample_deal()]).split("\n")

    assert len(lines) == 3
    header = lines[0].split(" | ")
    assert [h.strip() for h in header] == [
        "Description",
        "Store",
        "Size",
        "Price",
        "EUR/L",
        "Valid",
        "URL",
    ]
    assert [len(cell) for cell in header[:-1]] == WIDTHS
    assert lines[1] == "-" * len(lines[0])

    row = lines[2].split(" | ")
    assert [len(cell) for cell in row[:-1]] == WIDTHS
    assert [cell.strip() for cell in row] == [
        "Coca-Cola Zero Sugar 2 l",
        "Lidl",
        "2l",
        "1.29 EUR",
        "0.65 EUR/L",
        "2024-05-06 – 2024-...",
        "https://www.marktguru.de/offers/21916812",
    ]


def test_table_truncates_long_cells_within_width():
    deal = sample_deal(description="A" * 80, advertisers=[{"name": "Netto Marken-Discount"}])

    row = format_deals_table([deal]).split("\n")[2].split(" | ")

    assert row[0] == "A" * 52 + "..."
    assert row[1] == "Netto Marke..."


def test_table_falls_back_to_product_name_and_placeholders():
    deal = sample_deal(id="abc", description=None, price=None, volume=None)

    row = [cell.strip() for cell in format_deals_table([deal]).split("\n")[2].split(" | ")]

    assert row[0] == "Coca-Cola Zero"
    assert row[2:5] == ["-", "-", "-"]
    assert row[6] == "-"


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("exactly10!", 10) == "exactly10!"
    assert truncate("much too long", 10) == "much to..."
    assert truncate("abcdef", 2) == "ab"


def test_price_formatting():
    assert format_price(1.5) == "1.50 EUR"
    assert format_price(None) == "-"
    assert format_price(float("nan")) == "-"
    assert format_price_per_litre(0.645) == "0.65 EUR/L"
    assert format_price_per_litre(None) == "-"


def test_json_document():
    meta = SearchMeta(
        queries=["cola"],
        zip="85540",
        stores=["Lidl", "ALDI SÜD"],
        total_raw_results=57,
        result_count=1,
    )

    text = format_deals_json([sample_deal()], meta)
    document = json.loads(text)

    assert "ALDI SÜD" in text
    assert "\n  " in text
    assert document["meta"] == {
        "queries": ["cola"],
        "zip": "85540",
        "stores": ["Lidl", "ALDI SÜD"],
        "totalRawResults": 57,
        "resultCount": 1,
    }
    assert document["results"][0]["id"] == "21916812"
    assert document["results"][0]["pricePerLitre"] == 0.645
    assert document["results"][0]["url"] == "https://www.marktguru.de/offers/21916812"
