"""
Fragfolio Backend — Static Normalization Rules
================================================

What:  Lookup tables and regex rules applied to every AI result, and used
       alone to build fallback payloads when no provider answers.
Who:   NormalizationService (brand, fragrance, concentration) and
       NoteSuggestionService (note names, categories, intensity).

The tables are deliberately small: they pin the spellings the UI must show
consistently ("シャネル" and "chanel" both become "CHANEL"); everything else
is left to the provider.
"""

import re
from typing import Any, Dict, List, Optional

# ── Brand / Fragrance ─────────────────────────────────────────────────────

BRAND_RULES: Dict[str, str] = {
    "ディオール": "Dior",
    "シャネル": "CHANEL",
    "グッチ": "Gucci",
    "エルメス": "Hermès",
    "YSL": "Yves Saint Laurent",
    "TF": "Tom Ford",
    "chanel": "CHANEL",
    "dior": "Dior",
    "gucci": "Gucci",
}

_TRADEMARK_RE = re.compile(r"\((tm|TM)\)")
_REGISTERED_RE = re.compile(r"\((r|R)\)")
_NUMBER_RE = re.compile(r"No\.?\s*(\d+)")

CONCENTRATION_RULES: Dict[str, str] = {
    "edp": "EDP",
    "edt": "EDT",
    "parfum": "Parfum",
    "extrait": "Extrait",
    "cologne": "EDC",
    "eau de parfum": "EDP",
    "eau de toilette": "EDT",
    "eau de cologne": "EDC",
}


def normalize_brand(name: str) -> str:
    """Map known aliases to the canonical brand spelling; otherwise strip."""
    name = name.strip()
    return BRAND_RULES.get(name, name)


def normalize_fragrance_name(name: str) -> str:
    """
    >>> normalize_fragrance_name(" No 5 (TM) ")
    'No.5 ™'
    """
    name = name.strip()
    name = _TRADEMARK_RE.sub("™", name)
    name = _REGISTERED_RE.sub("®", name)
    return _NUMBER_RE.sub(r"No.\1", name)


def normalize_concentration(value: str) -> str:
    return CONCENTRATION_RULES.get(value.strip().lower(), value)


def apply_rules(data: Dict[str, Any], brand_keys=("normalized_brand",),
                fragrance_keys=("normalized_fragrance_name",)) -> Dict[str, Any]:
    """Apply the rule tables in place to whichever normalized fields are present."""
    for key in brand_keys:
        if isinstance(data.get(key), str):
            data[key] = normalize_brand(data[key])
    for key in fragrance_keys:
        if isinstance(data.get(key), str):
            data[key] = normalize_fragrance_name(data[key])
    if isinstance(data.get("concentration_type"), str):
        data["concentration_type"] = normalize_concentration(data["concentration_type"])
    return data


# ── Notes ─────────────────────────────────────────────────────────────────

NOTE_NAME_RULES: Dict[str, str] = {
    "bergamotte": "bergamot",
    "rosa": "rose",
    "sandal": "sandalwood",
    "vanille": "vanilla",
    "jasmin": "jasmine",
    "cedarwood": "cedar",
    "white musk": "musk",
}

NOTE_CATEGORIES: Dict[str, List[str]] = {
    "citrus": ["bergamot", "lemon", "lime", "orange", "grapefruit", "mandarin"],
    "floral": ["rose", "jasmine", "lily", "violet", "peony", "freesia"],
    "woody": ["sandalwood", "cedar", "pine", "oak", "birch", "bamboo"],
    "oriental": ["vanilla", "amber", "musk", "oud", "benzoin", "labdanum"],
    "fresh": ["aquatic", "marine", "ozone", "cucumber", "mint", "eucalyptus"],
    "spicy": ["cinnamon", "clove", "pepper", "cardamom", "ginger", "nutmeg"],
    "fruity": ["apple", "peach", "berry", "cherry", "pear", "plum"],
    "green": ["grass", "leaves", "stems", "moss", "fern", "basil"],
    "gourmand": ["chocolate", "caramel", "honey", "coffee", "cake", "sugar"],
}

INTENSITY_LEVELS = ("light", "moderate", "strong", "very_strong")

_INTENSITY_ALIASES: Dict[str, str] = {
    "weak": "light",
    "mild": "light",
    "medium": "moderate",
    "heavy": "strong",
    "intense": "very_strong",
    "powerful": "very_strong",
}


def normalize_note_name(name: str) -> str:
    name = name.strip().lower()
    return NOTE_NAME_RULES.get(name, name)


def categorize_note(name: str) -> str:
    """First category whose list holds the note, or whose name the note contains."""
    name = name.lower()
    for category, notes in NOTE_CATEGORIES.items():
        if name in notes or category in name:
            return category
    return "other"


def normalize_intensity(value: Optional[str]) -> str:
    value = (value or "").strip().lower()
    if value in INTENSITY_LEVELS:
        return value
    return _INTENSITY_ALIASES.get(value, "moderate")


# ── Free-text input ───────────────────────────────────────────────────────

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_input(text: str) -> str:
    """Strip markup and collapse whitespace in user-typed names."""
    text = _TAG_RE.sub("", text or "")
    return _WHITESPACE_RE.sub(" ", text).strip()
