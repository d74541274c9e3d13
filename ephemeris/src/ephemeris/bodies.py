"""Planet definitions, orb tables, and sign data."""

from __future__ import annotations

# Celestial body IDs for pyswisseph
# These map to swisseph constants
BODY_IDS: dict[str, int] = {
    "sun": 0,  # SE_SUN
    "moon": 1,  # SE_MOON
    "mercury": 2,  # SE_MERCURY
    "venus": 3,  # SE_VENUS
    "mars": 4,  # SE_MARS
    "jupiter": 5,  # SE_JUPITER
    "saturn": 6,  # SE_SATURN
    "uranus": 7,  # SE_URANUS
    "neptune": 8,  # SE_NEPTUNE
    "pluto": 9,  # SE_PLUTO
    "north_node": 11,  # SE_TRUE_NODE (true node, not mean)
}

# South node is always opposite the true north node
DERIVED_BODIES: dict[str, tuple[str, float]] = {
    "south_node": ("north_node", 180.0),
}

# Canonical body order used for charts, snapshots and tie-breaking
ALL_BODIES = [*BODY_IDS.keys(), *DERIVED_BODIES.keys()]
BODY_ORDER: dict[str, int] = {name: index for index, name in enumerate(ALL_BODIES)}

# Bodies that take part in natal configurations (nodes excluded)
PLANETS = [b for b in ALL_BODIES if not b.endswith("_node")]
PERSONAL_PLANETS = {"sun", "moon", "mercury", "venus", "mars"}

# Zodiac signs in order
SIGNS = [
    "Aries",
    "Taurus",
    "Gemini",
    "Cancer",
    "Leo",
    "Virgo",
    "Libra",
    "Scorpio",
    "Sagittarius",
    "Capricorn",
    "Aquarius",
    "Pisces",
]

ELEMENTS = ["Fire", "Earth", "Air", "Water"]
MODALITIES = ["Cardinal", "Fixed", "Mutable"]

# Aspect definitions: name -> exact angle
ASPECTS: dict[str, float] = {
    "conjunction": 0.0,
    "sextile": 60.0,
    "square": 90.0,
    "trine": 120.0,
    "opposition": 180.0,
    "quincunx": 150.0,
    "semisquare": 45.0,
    "sesquiquadrate": 135.0,
}

# Default orbs by aspect type (in degrees)
# Major aspects get wider orbs
DEFAULT_ORBS: dict[str, float] = {
    "conjunction": 10.0,
    "opposition": 10.0,
    "square": 8.0,
    "trine": 8.0,
    "sextile": 6.0,
    "quincunx": 3.0,
    "semisquare": 2.0,
    "sesquiquadrate": 2.0,
}

# Orb modifiers by body type
# Luminaries (Sun, Moon) get full orb; outer planets get reduced
ORB_MODIFIERS: dict[str, float] = {
    "sun": 1.0,
    "moon": 1.0,
    "mercury": 0.8,
    "venus": 0.8,
    "mars": 0.8,
    "jupiter": 0.7,
    "saturn": 0.7,
    "uranus": 0.6,
    "neptune": 0.6,
    "pluto": 0.6,
    "north_node": 0.5,
    "south_node": 0.5,
}

# Significance classification
MAJOR_ASPECTS = {"conjunction", "opposition", "square", "trine"}
MODERATE_ASPECTS = {"sextile", "quincunx"}
MINOR_ASPECTS = {"semisquare", "sesquiquadrate"}


def normalize_longitude(longitude: float) -> float:
    """Wrap a longitude into [0, 360)."""
    longitude = float(longitude) % 360.0
    # -1e-18 % 360 rounds up to 360.0
    if longitude >= 360.0:
        longitude = 0.0
    return longitude


def get_effective_orb(
    base_orb: float,
    body1: str | None = None,
    body2: str | None = None,
    modifiers: dict[str, float] | None = None,
) -> float:
    """Scale a base aspect orb by the average modifier of the two bodies.

    Bare longitudes (no body names) keep the base orb.
    """
    if body1 is None or body2 is None:
        return base_orb
    table = ORB_MODIFIERS if modifiers is None else modifiers
    mod1 = table.get(body1, 0.7)
    mod2 = table.get(body2, 0.7)
    return base_orb * (mod1 + mod2) / 2


def longitude_to_sign(longitude: float) -> tuple[str, float]:
    """Convert ecliptic longitude to sign and degree within sign."""
    longitude = normalize_longitude(longitude)
    sign_index = int(longitude / 30.0)
    degree = longitude - (sign_index * 30.0)
    return SIGNS[sign_index], degree


def sign_element(sign: str) -> str:
    return ELEMENTS[SIGNS.index(sign) % 4]


def sign_modality(sign: str) -> str:
    return MODALITIES[SIGNS.index(sign) % 3]


def find_house(longitude: float, cusps: list[float]) -> int:
    """Determine which house a longitude falls in given house cusps."""
    if not cusps or len(cusps) < 12:
        return 1
    for i in range(12):
        cusp_start = cusps[i]
        cusp_end = cusps[(i + 1) % 12]
        if cusp_start <= cusp_end:
            if cusp_start <= longitude < cusp_end:
                return i + 1
        else:
            # Wraps around 0 degrees
            if longitude >= cusp_start or longitude < cusp_end:
                return i + 1
    return 1


def aspect_significance(aspect_type: str) -> str:
    """Classify aspect significance."""
    if aspect_type in MAJOR_ASPECTS:
        return "major"
    elif aspect_type in MODERATE_ASPECTS:
        return "moderate"
    return "minor"
