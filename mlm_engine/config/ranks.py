# mlm_engine/config/ranks.py
"""
Member ranks configuration, based on downline size and lifetime earnings.
"""
from enum import Enum
from decimal import Decimal


class Rank(Enum):
    STARTER = "Starter"
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"
    DIAMOND = "Diamond"
    CROWN = "Crown"


# Ordered lowest to highest
RANK_CONFIG = {
    Rank.STARTER: {
        "level": 1,
        "minDownline": 0,
        "minEarnings": Decimal("0"),
    },
    Rank.BRONZE: {
        "level": 2,
        "minDownline": 5,
        "minEarnings": Decimal("5000"),
    },
    Rank.SILVER: {
        "level": 3,
        "minDownline": 15,
        "minEarnings": Decimal("20000"),
    },
    Rank.GOLD: {
        "level": 4,
        "minDownline": 50,
        "minEarnings": Decimal("100000"),
    },
    Rank.PLATINUM: {
        "level": 5,
        "minDownline": 100,
        "minEarnings": Decimal("500000"),
    },
    Rank.DIAMOND: {
        "level": 6,
        "minDownline": 250,
        "minEarnings": Decimal("1000000"),
    },
    Rank.CROWN: {
        "level": 7,
        "minDownline": 500,
        "minEarnings": Decimal("5000000"),
    },
}
