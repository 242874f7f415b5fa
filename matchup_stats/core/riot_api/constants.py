"""Riot API constants and enum definitions."""

from enum import Enum


class Region(str, Enum):
    """Riot API regions for regional routing."""

    AMERICAS = "americas"
    ASIA = "asia"
    EUROPE = "europe"
    SEA = "sea"


class Platform(str, Enum):
    """Riot API platforms for platform routing."""

    BR1 = "br1"
    EUN1 = "eun1"
    EUW1 = "euw1"
    JP1 = "jp1"
    KR = "kr"
    LA1 = "la1"
    LA2 = "la2"
    NA1 = "na1"
    OC1 = "oc1"
    PH2 = "ph2"
    RU = "ru"
    SG2 = "sg2"
    TH2 = "th2"
    TR1 = "tr1"
    TW2 = "tw2"
    VN2 = "vn2"


class EndpointClass(str, Enum):
    """Which routing host serves an endpoint."""

    PLATFORM = "platform"
    REGIONAL = "regional"


class QueueType(int, Enum):
    """Riot API queue ids for match filtering."""

    RANKED_SOLO_5X5 = 420
    RANKED_FLEX_5X5 = 440


class ApexTier(str, Enum):
    """Apex league tiers, in the order players are discovered."""

    CHALLENGER = "challenger"
    GRANDMASTER = "grandmaster"
    MASTER = "master"


# league-v4 spells the queue with a lowercase x
RANKED_SOLO_QUEUE_NAME = "RANKED_SOLO_5x5"
