"""Comparison category detection.

Scores every category from two kinds of evidence, then picks the best:

    1. Known entities (+40): a term names a known movie franchise, product
       line or public figure.
    2. Keyword patterns: each matching pattern over both terms adds a
       category-specific weight.

``general`` starts at 10, so a category must beat that to be chosen. Scores are
compared in CATEGORY_ORDER with strict ">", so on a tie the earlier category
wins.
"""

import re
from dataclasses import dataclass, field

from trendarc.engine.scoring import ComparisonCategory

_C = ComparisonCategory

CATEGORY_ORDER: tuple[ComparisonCategory, ...] = (
    _C.MOVIES,
    _C.PRODUCTS,
    _C.TECH,
    _C.PEOPLE,
    _C.BRANDS,
    _C.GAMES,
    _C.MUSIC,
    _C.PLACES,
    _C.GENERAL,
)

_GENERAL_BASE_SCORE = 10
_KNOWN_ENTITY_SCORE = 40


def _patterns(*sources: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(s, re.IGNORECASE) for s in sources)


# (category, score per matching pattern, evidence confidence, patterns)
PATTERN_RULES: tuple[tuple[ComparisonCategory, int, int, tuple[re.Pattern, ...]], ...] = (
    (_C.MOVIES, 20, 60, _patterns(
        r"\b(movie|film|watch|streaming|netflix|prime|disney|hbo|trailer|actor|actress|director|oscar|imdb|rotten tomatoes)\b",
        r"\b(vs|versus).*(watch|better|rating)",
        r"\b(part|chapter|volume|episode|season)\s*\d+",
        r"\b(marvel|dc|horror|comedy|action|thriller|drama|animation|animated)\b",
    )),
    (_C.PRODUCTS, 20, 60, _patterns(
        r"\b(buy|price|review|specs|features|vs|compare|better|best|cheap|expensive|amazon|ebay|walmart)\b",
        r"\b(iphone|samsung|pixel|galaxy|macbook|laptop|phone|tablet|headphones|earbuds|camera|tv|monitor)\b",
        r"\b(gb|tb|mah|inch|hz|mp|megapixel)\b",
    )),
    (_C.TECH, 25, 65, _patterns(
        r"\b(programming|language|framework|library|api|sdk|database|server|cloud|github|npm|pypi)\b",
        r"\b(react|angular|vue|svelte|next|node|python|javascript|typescript|rust|go|java|swift)\b",
        r"\b(aws|azure|gcp|docker|kubernetes|linux|windows|mac|ios|android)\b",
    )),
    (_C.PEOPLE, 20, 60, _patterns(
        r"\b(singer|actor|actress|politician|athlete|player|celebrity|star|musician|artist|author)\b",
        r"\b(net worth|age|height|wife|husband|married|dating|biography)\b",
    )),
    (_C.GAMES, 25, 65, _patterns(
        r"\b(game|gaming|playstation|xbox|nintendo|steam|pc game|mobile game|fps|rpg|mmo)\b",
        r"\b(call of duty|fortnite|minecraft|gta|fifa|pubg|valorant|league of legends)\b",
    )),
    (_C.MUSIC, 25, 65, _patterns(
        r"\b(song|album|band|spotify|playlist|concert|tour|rapper|singer|lyrics|billboard)\b",
        r"\b(rock|pop|hip hop|jazz|k-pop|kpop|edm|country music)\b",
    )),
    (_C.PLACES, 20, 55, _patterns(
        r"\b(city|country|island|beach|travel|vacation|visit|tourism|state|province)\b",
        r"\b(paris|london|tokyo|new york|dubai|bali|rome|barcelona|berlin|sydney)\b",
    )),
    (_C.BRANDS, 15, 50, _patterns(
        r"\b(company|brand|service|subscription|platform|app|website)\b",
        r"\b(inc|corp|llc|ltd|co)\b",
    )),
)

KNOWN_ENTITIES: dict[ComparisonCategory, frozenset[str]] = {
    _C.MOVIES: frozenset({
        "avengers", "avatar", "titanic", "inception", "interstellar", "oppenheimer", "barbie",
        "batman", "superman", "spiderman", "ironman", "thor", "hulk", "deadpool",
        "star wars", "lord of the rings", "harry potter", "hunger games", "twilight",
        "fast and furious", "mission impossible", "james bond", "john wick",
        "jurassic park", "jurassic world", "toy story", "frozen", "lion king",
        "matrix", "terminator", "alien", "predator", "transformers",
        "shawshank", "godfather", "dark knight", "fight club", "pulp fiction",
        "forrest gump", "gladiator", "braveheart", "saving private ryan",
    }),
    _C.PRODUCTS: frozenset({
        "iphone", "samsung", "pixel", "galaxy", "oneplus", "xiaomi", "huawei",
        "macbook", "thinkpad", "surface", "dell", "hp", "lenovo", "asus",
        "playstation", "xbox", "nintendo", "switch",
        "airpods", "beats", "bose", "sony", "jbl", "sennheiser",
        "nike", "adidas", "puma", "reebok", "under armour",
    }),
    _C.PEOPLE: frozenset({
        "elon musk", "jeff bezos", "bill gates", "mark zuckerberg", "tim cook",
        "taylor swift", "beyonce", "drake", "kanye", "rihanna", "ariana grande",
        "tom cruise", "leonardo dicaprio", "brad pitt", "johnny depp",
        "cristiano ronaldo", "messi", "lebron james", "michael jordan",
        "trump", "biden", "obama", "modi", "putin",
    }),
}

_ENTITY_LABELS = {
    _C.MOVIES: "a known movie/franchise",
    _C.PRODUCTS: "a known product/brand",
    _C.PEOPLE: "a known person",
}


@dataclass
class CategoryEvidence:
    source: str  # "known_entity" or "pattern"
    signal: str
    confidence: int


@dataclass
class CategoryResult:
    """Detected category with the evidence that produced it.

    Attributes:
        category: Best-scoring category (general if nothing beat the base)
        confidence: Winning score clamped to [20, 95]
        evidence: Every signal that contributed to any category
    """

    category: ComparisonCategory
    confidence: int
    evidence: list[CategoryEvidence] = field(default_factory=list)


def detect_category(terms: list[str]) -> CategoryResult:
    """Detect what kind of things a comparison's terms are.

    Example:
        >>> detect_category(["Oppenheimer", "Barbie"]).category
        <ComparisonCategory.MOVIES: 'movies'>
        >>> detect_category(["foo", "bar"]).category
        <ComparisonCategory.GENERAL: 'general'>
    """
    combined = " ".join(terms).lower()
    evidence: list[CategoryEvidence] = []
    scores = {category: 0 for category in CATEGORY_ORDER}
    scores[_C.GENERAL] = _GENERAL_BASE_SCORE

    for term in terms:
        lower = term.lower()
        for category, entities in KNOWN_ENTITIES.items():
            if lower in entities or any(entity in lower for entity in entities):
                scores[category] += _KNOWN_ENTITY_SCORE
                evidence.append(CategoryEvidence(
                    source="known_entity",
                    signal=f"{term} is {_ENTITY_LABELS[category]}",
                    confidence=80,
                ))

    for category, weight, confidence, patterns in PATTERN_RULES:
        for pattern in patterns:
            if pattern.search(combined):
                scores[category] += weight
                evidence.append(CategoryEvidence(
                    source="pattern",
                    signal=f"Matched {category.value} pattern: {pattern.pattern}",
                    confidence=confidence,
                ))

    best = _C.GENERAL
    best_score = scores[_C.GENERAL]
    for category in CATEGORY_ORDER:
        if scores[category] > best_score:
            best, best_score = category, scores[category]

    return CategoryResult(
        category=best,
        confidence=max(20, min(95, best_score)),
        evidence=evidence,
    )
