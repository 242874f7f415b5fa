"""
Tests for champion name normalization.
"""

from matchup_stats.core.champions import champion_key, normalize_champion_name


def test_champion_key_strips_punctuation_and_case():
    assert champion_key(" K'Sante ") == "ksante"
    assert champion_key("Dr. Mundo") == "drmundo"
    assert champion_key("Nunu & Willump") == "nunuwillump"


def test_internal_names_map_to_display_names():
    """match-v5 internal names resolve to the names clients send."""
    assert normalize_champion_name("KSante") == "K'Sante"
    assert normalize_champion_name("MonkeyKing") == "Wukong"
    assert normalize_champion_name("DrMundo") == "Dr. Mundo"


def test_display_names_are_stable():
    assert normalize_champion_name("K'Sante") == "K'Sante"
    assert normalize_champion_name("Wukong") == "Wukong"


def test_unknown_names_are_trimmed():
    assert normalize_champion_name("  Ahri ") == "Ahri"


def test_blank_name():
    assert normalize_champion_name("   ") == ""
