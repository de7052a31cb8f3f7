from __future__ import annotations

from lotscout.categorization import prompts
from lotscout.models import Category, StoredLot

CATEGORIES = [
    Category(id=1, name="Furniture", description="Tables, chairs and cabinets"),
    Category(id=7, name="Other", is_system=True),
]


def test_category_lines_include_names_and_ids() -> None:
    assert prompts.category_lines(CATEGORIES) == (
        '- Name: "Furniture" - Tables, chairs and cabinets (ID: 1)\n'
        '- Name: "Other" (ID: 7)'
    )


def test_system_prompts_list_categories() -> None:
    assert '"Furniture"' in prompts.system_prompt(CATEGORIES)
    bulk = prompts.bulk_system_prompt(CATEGORIES)
    assert "item IDs" in bulk
    assert "(ID: 7)" in bulk


def test_user_prompts_describe_lots() -> None:
    lots = [
        StoredLot(id=12, listing_id=1, url="https://a/lot/12", title="Oak table", description="Solid oak"),
        StoredLot(id=13, listing_id=1, url="https://a/lot/13", title="Lamp"),
    ]

    single = prompts.user_prompt(lots[0])
    bulk = prompts.bulk_user_prompt(lots)

    assert "Title: Oak table" in single
    assert "Description: Solid oak" in single
    assert "### Item 1 (ID: 12)" in bulk
    assert "### Item 2 (ID: 13)" in bulk
    assert prompts.NO_DESCRIPTION in bulk
