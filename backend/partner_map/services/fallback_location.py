"""Deterministic placeholder positions for schools that could not be geocoded.

Rows nobody can geocode still need a marker on the map. The position is a
pure function of the school's descriptive fields, so re-importing the same
row never moves its marker.
"""

# (lon_min, lat_min, lon_max, lat_max)
CONTINENT_BBOXES: dict[str, tuple[float, float, float, float]] = {
    "europe": (-10, 36, 35, 70),
    "asia": (60, 5, 145, 55),
    "africa": (-20, -35, 55, 35),
    "north america": (-130, 15, -60, 60),
    "south america": (-80, -55, -35, 15),
    "oceania": (110, -50, 180, 0),
    "australia": (110, -50, 180, 0),
}
WORLD_BBOX = (-180, -60, 180, 80)

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619


def fnv1a_32(value: str) -> int:
    """32-bit FNV-1a over the UTF-16 code units of ``value``."""
    data = value.encode("utf-16-le")
    h = FNV_OFFSET_BASIS
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def hash_to_unit(value: str) -> float:
    """Map a string onto [0, 1)."""
    return fnv1a_32(value) / 2**32


def continent_bbox(continent: str | None) -> tuple[float, float, float, float]:
    return CONTINENT_BBOXES.get((continent or "").strip().lower(), WORLD_BBOX)


def fallback_point(continent: str, country: str, city: str, name: str) -> tuple[float, float]:
    """Return a stable ``(longitude, latitude)`` inside the continent's box."""
    lon_min, lat_min, lon_max, lat_max = continent_bbox(continent)
    seed = f"{continent}|{country}|{city}|{name}"
    a = hash_to_unit(seed)
    b = hash_to_unit(f"{seed}::b")
    return lon_min + a * (lon_max - lon_min), lat_min + b * (lat_max - lat_min)
