"""Prompt builders for the classification service."""

from __future__ import annotations

from typing import Iterable, Sequence

from ..models import Category, StoredLot

NO_DESCRIPTION = "No description available"


def category_lines(categories: Iterable[Category]) -> str:
    lines = []
    for category in categories:
        suffix = f" - {category.description}" if category.description else ""
        lines.append(f'- Name: "{category.name}"{suffix} (ID: {category.id})')
    return "\n".join(lines)


def system_prompt(categories: Sequence[Category]) -> str:
    return f"""You categorize items offered in online auctions.
Read the title and description of the item and estimate, for each category, the probability that it fits the item.

## Categories
{category_lines(categories)}

## Instructions
- Answer with a JSON object whose keys are category NAMES (not ids) and whose values are probabilities between 0 and 1.
- The probabilities should add up to roughly 1.
- Use the category descriptions to decide between similar categories.
- Only give high probabilities to clear matches.
- Leave out categories with a probability of 0.01 or less.

## Example
{{"Category A": 0.75, "Category B": 0.2, "Category C": 0.05}}"""


def bulk_system_prompt(categories: Sequence[Category]) -> str:
    return f"""You categorize items offered in online auctions.
For every item listed by the user, read its title and description and estimate, for each category, the probability that it fits the item.

## Categories
{category_lines(categories)}

## Instructions
- Answer with a JSON object whose keys are the item IDs given by the user.
- Each value is an object whose keys are category NAMES and whose values are probabilities between 0 and 1.
- The probabilities of one item should add up to roughly 1.
- Use the category descriptions to decide between similar categories.
- Only give high probabilities to clear matches.
- Leave out categories with a probability of 0.01 or less.

## Example
{{"12": {{"Category A": 0.8, "Category B": 0.2}}, "13": {{"Category C": 0.9, "Category A": 0.1}}}}"""


def _describe(lot: StoredLot) -> str:
    return f"Title: {lot.title}\nDescription: {lot.description or NO_DESCRIPTION}"


def user_prompt(lot: StoredLot) -> str:
    return f"## Item\n{_describe(lot)}\n\nEstimate the category probabilities for this item."


def bulk_user_prompt(lots: Sequence[StoredLot]) -> str:
    blocks = [
        f"### Item {index} (ID: {lot.id})\n{_describe(lot)}"
        for index, lot in enumerate(lots, start=1)
    ]
    body = "\n\n".join(blocks)
    return f"## Items\n\n{body}\n\nEstimate the category probabilities for every item."


__all__ = [
    "bulk_system_prompt",
    "bulk_user_prompt",
    "category_lines",
    "system_prompt",
    "user_prompt",
]
