"""Ambiguous keywords and comparison-category inference."""

import re

# Keywords with more than one common real-world sense
AMBIGUOUS_KEYWORDS = frozenset({
    "apple", "java", "python", "tesla", "amazon", "mercury", "mars", "ruby",
    "swift", "go", "rust", "oracle", "spark", "delta", "pearl", "crystal",
    "mint", "iris", "olive", "sage", "basil",
})

# First match wins
CATEGORY_RULES: list[tuple[str, re.Pattern[str]]] = [
    ("technology", re.compile(
        r"\b(iphone|android|windows|mac|macbook|linux|ios|apps?|software|code|coding|"
        r"programming|python|java|javascript|samsung|google|microsoft|laptops?|"
        r"computers?|smartphones?|phones?|tablets?|ipad|pixel|galaxy)\b"
    )),
    ("food", re.compile(
        r"\b(pizza|burgers?|coffee|tea|chocolate|fruits?|vegetables?|apples?|"
        r"oranges?|bananas?|grapes?|pears?|recipes?|snacks?)\b"
    )),
    ("entertainment", re.compile(
        r"\b(movies?|films?|shows?|series|actors?|actress(?:es)?|netflix|disney|hbo|tv|"
        r"albums?|songs?|singers?|bands?)\b"
    )),
    ("sports", re.compile(
        r"\b(football|basketball|soccer|tennis|baseball|golf|players?|teams?|league|"
        r"nba|nfl|mlb|messi|ronaldo|lebron)\b"
    )),
    ("animals", re.compile(r"\b(snakes?|lizards?|dogs?|cats?|reptiles?|birds?|wildlife)\b")),
    ("brands", re.compile(r"\b(vs|versus|compare)\b")),
]


def is_ambiguous_keyword(keyword: str) -> bool:
    """Exact, case-insensitive membership.

    Example:
        >>> is_ambiguous_keyword("Apple"), is_ambiguous_keyword("iPhone")
        (True, False)
    """
    return keyword.strip().lower() in AMBIGUOUS_KEYWORDS


def suggest_category(term_a: str, term_b: str) -> str | None:
    """Guess the comparison category from the two terms, or None.

    Example:
        >>> suggest_category("iPhone", "Android")
        'technology'
    """
    text = f"{term_a} {term_b}".lower()
    for category, pattern in CATEGORY_RULES:
        if pattern.search(text):
            return category
    return None
