"""Shared fixtures for offline tests.

Provides a small, deterministic ingredient catalog and a factory for building
one-off ingredients with overrides.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Ensure project root is on sys.path for module imports
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ingredient_library.models import Ingredient  # noqa: E402

FIXED_TS = "2024-01-15T10:00:00Z"


def _ingredient(**overrides: Any) -> Ingredient:
    base: dict[str, Any] = {
        "id": "ing-x",
        "name": "Sample",
        "category": "Floral",
        "family": "Floral",
        "status": "Active",
        "type": "Natural",
        "supplier": "Givaudan",
        "cost_per_kg": 10.0,
        "stock": 100,
        "favorite": False,
        "updated_at": FIXED_TS,
    }
    base.update(overrides)
    return Ingredient(**base)


@pytest.fixture
def make_ingredient() -> Callable[..., Ingredient]:
    return _ingredient


@pytest.fixture
def sample_ingredients() -> list[Ingredient]:
    """Six ingredients spanning every status, type and stock bucket."""

    return [
        _ingredient(
            id="ing-001",
            name="Bergamot Oil",
            category="Citrus",
            family="Hesperidic",
            supplier="Givaudan",
            cost_per_kg=85.5,
            stock=200,
            favorite=True,
            cas_number="8007-75-8",
            ifra_limit_pct=2.0,
            allergens=["Limonene", "Linalool"],
        ),
        _ingredient(
            id="ing-002",
            name="Iso E Super",
            category="Woody",
            family="Amber Woody",
            type="Synthetic",
            supplier="IFF",
            cost_per_kg=45.0,
            stock=120,
            cas_number="54464-57-2",
        ),
        _ingredient(
            id="ing-003",
            name="Rose Absolute",
            category="Floral",
            family="Floral",
            status="Limited",
            supplier="Firmenich",
            cost_per_kg=950.0,
            stock=10,
            favorite=True,
            cas_number="8007-01-0",
            allergens=["Citronellol", "Geraniol"],
        ),
        _ingredient(
            id="ing-004",
            name="Vanillin",
            category="Sweet",
            family="Gourmand",
            type="Synthetic",
            supplier="Symrise",
            cost_per_kg=18.0,
            stock=0,
            cas_number="121-33-5",
        ),
        _ingredient(
            id="ing-005",
            name="Hedione",
            category="Floral",
            family="Floral",
            status="Inactive",
            type="Synthetic",
            supplier="Firmenich",
            cost_per_kg=32.0,
            stock=50,
            cas_number="24851-98-7",
        ),
        _ingredient(
            id="ing-006",
            name="Sandalwood Oil",
            category="Woody",
            family="Woody",
            supplier="Givaudan",
            cost_per_kg=400.0,
            stock=149,
            favorite=True,
        ),
    ]
