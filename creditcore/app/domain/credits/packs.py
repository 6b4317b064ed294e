"""
Credit pack catalogue.

Prices are in minor units (cents) of `currency`.
"""

from typing import Optional, Dict, Any

CREDIT_PACKS: Dict[str, Dict[str, Any]] = {
    "10-credits": {
        "name": "Starter Pack",
        "credits": 10,
        "price_minor_units": 500,
        "currency": "usd",
        "description": "10 interview credits"
    },
    "25-credits": {
        "name": "Practice Pack",
        "credits": 25,
        "price_minor_units": 1000,
        "currency": "usd",
        "description": "25 interview credits"
    },
    "60-credits": {
        "name": "Pro Pack",
        "credits": 60,
        "price_minor_units": 2000,
        "currency": "usd",
        "description": "60 interview credits"
    },
}


def get_pack(pack_id: str) -> Optional[Dict[str, Any]]:
    """Return the catalogue entry for pack_id, or None."""
    return CREDIT_PACKS.get(pack_id)
