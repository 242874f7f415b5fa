"""Champion name normalization.

match-v5 reports internal champion names (``KSante``, ``MonkeyKing``) while
clients ask for display names, so both sides go through
``normalize_champion_name`` before they are used as store keys.
"""

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]")

# Keyed by champion_key() of the raw name
CHAMPION_ALIASES = {
    "ksante": "K'Sante",
    "drmundo": "Dr. Mundo",
    "nunuandwillump": "Nunu & Willump",
    "nunu": "Nunu & Willump",
    "wukong": "Wukong",
    "monkeyking": "Wukong",
}


def champion_key(raw: str) -> str:
    """Lowercase a champion name and strip everything but letters and digits."""
    return _NON_ALNUM.sub("", raw.strip().lower())


def normalize_champion_name(raw: str) -> str:
    """Return the display name for ``raw``, or ``""`` when it is blank."""
    trimmed = raw.strip()
    if not trimmed:
        return ""
    return CHAMPION_ALIASES.get(champion_key(trimmed), trimmed)
