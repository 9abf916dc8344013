"""Stable identity keys for partner schools that arrive without one."""

import re
import unicodedata


def _slugify_part(value: str) -> str:
    """Lowercase ASCII slug with diacritics removed and spaces turned into hyphens."""
    text = unicodedata.normalize("NFD", value or "")
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.lower().strip()
    text = re.sub(r"\s+", " ", text)
    text = text.replace("|", "-")
    text = re.sub(r"[^a-z0-9\-\s]", "", text)
    return re.sub(r"\s", "-", text)


def make_external_key(name: str, country: str, city: str) -> str:
    """Derive the natural key for a school from its name, country and city.

    An empty city is kept as an empty component so "x|y|" never collides
    with a key that has a city.
    """
    return "|".join(_slugify_part(part) for part in (name, country, city))
