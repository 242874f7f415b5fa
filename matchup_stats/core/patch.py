"""Patch notation helpers."""

import re

_COMMUNITY_PATCH = re.compile(r"^(\d{2})\.(\d{1,2})$")

# match-v5 ``gameVersion`` majors run 10 below the season-style notation
# ("26.4" is reported as "16.4.xxx.yyyy").
RIOT_MAJOR_OFFSET = 10


def to_riot_patch_prefix(patch: str) -> str:
    """Convert community patch notation to the ``gameVersion`` prefix.

    Majors of 20 and above are shifted down by ``RIOT_MAJOR_OFFSET``; anything
    that is not ``NN.N`` notation is returned trimmed but otherwise untouched.

    >>> to_riot_patch_prefix("26.4")
    '16.4'
    >>> to_riot_patch_prefix("14.20")
    '14.20'
    """
    trimmed = patch.strip()
    match = _COMMUNITY_PATCH.match(trimmed)
    if not match:
        return trimmed

    major = int(match.group(1))
    minor = int(match.group(2))
    riot_major = major - RIOT_MAJOR_OFFSET if major >= 20 else major
    return f"{riot_major}.{minor}"


def matches_patch(game_version: str, riot_prefix: str) -> bool:
    """Check a match's ``gameVersion`` against a Riot patch prefix.

    The prefix must end on a version component boundary so ``16.1`` does not
    accept ``16.10.x``.
    """
    if not game_version.startswith(riot_prefix):
        return False
    rest = game_version[len(riot_prefix):]
    return rest == "" or rest.startswith(".")
