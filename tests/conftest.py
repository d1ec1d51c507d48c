"""Shared small configurations for the generator tests."""
from __future__ import annotations

import pytest

from genconfig import GenerationConfig, Range
from taxonomy import DEFAULT_TAXONOMY, GalaxyType


def only_g_stars():
    """Taxonomy in which every galaxy type yields POP_I G stars."""
    return DEFAULT_TAXONOMY.with_overrides({
        "star_types": {t.name: {"G": 1.0} for t in GalaxyType},
        "star_compositions": {"G": {"POP_I": 1.0}},
    })


@pytest.fixture
def small_cfg() -> GenerationConfig:
    return GenerationConfig(system_count=Range(3, 3), planet_count=Range(1, 4))


@pytest.fixture
def sun_cfg() -> GenerationConfig:
    """Three Sun-like systems, each 4-5 Gyr old inside an older galaxy."""
    return GenerationConfig(
        system_count=Range(3, 3),
        galaxy_age=Range(10.0, 13.6),
        system_age=Range(4.0, 5.0),
        taxonomy=only_g_stars(),
    )
