"""
Title -> Category via an ordered list of keyword patterns. First match wins.

Patterns are unanchored substring matches; the order below is part of the
classification contract (e.g. "Fed" questions that mention Trump are politics).
"""

from __future__ import annotations

import re

from scanner.models import Category

CATEGORY_PATTERNS: tuple[tuple[Category, re.Pattern], ...] = (
    (Category.CRYPTO, re.compile(r"bitcoin|btc|ethereum|eth|crypto|solana|sol|defi")),
    (Category.POLITICS, re.compile(r"president|election|congress|senate|vote|trump|biden|democrat|republican")),
    (Category.ECONOMICS, re.compile(r"fed|inflation|gdp|unemployment|recession|economy|rates|cpi")),
    (Category.SPORTS, re.compile(r"nfl|nba|mlb|nhl|championship|playoff|super bowl|world cup")),
    (Category.TECH, re.compile(r"ai|openai|chatgpt|google|apple|microsoft|nvidia|tech|ipo")),
    (Category.CLIMATE, re.compile(r"climate|weather|hurricane|earthquake|temperature")),
    (Category.GEOPOLITICS, re.compile(r"war|military|conflict|ukraine|russia|china|taiwan")),
)


def infer_category(title: str) -> Category:
    lower = title.lower()
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(lower):
            return category
    return Category.GENERAL


def parse_category(value: str) -> Category:
    """Category from its string value; unknown names raise ValueError."""
    return Category(value.strip().lower())
