"""Tests for the Classification Resolver."""
from __future__ import annotations

import pytest

from bodies import GalaxyClass, PlanetClass, SatelliteClass, StarClass
from generrors import NoValidCandidate
from taxonomy import (
    DEFAULT_TAXONOMY,
    AtmosphereType,
    GalaxyBrightness,
    GalaxyType,
    PlanetComposition,
    PlanetType,
    StarComposition,
    StarStage,
    StarType,
)
from universegen import (
    Domain,
    LevelContext,
    expand,
    resolve,
    resolve_galaxy,
    resolve_planet,
    resolve_stage,
    resolve_star,
)

SUN = StarClass(StarType.G, StarStage.MAIN_SEQUENCE, StarComposition.POP_I)
SPIRAL = GalaxyClass(GalaxyType.SPIRAL, GalaxyBrightness.BRIGHT)


def _seeds(n: int = 200):
    return [expand(2024, i, Domain.PLANET) for i in range(n)]


def _planet_ctx(seed: int) -> LevelContext:
    return LevelContext("planet", "1.0.p0", "1.0", seed, parent=SUN)


def _star_ctx(seed: int, age: float = 4.6) -> LevelContext:
    return LevelContext("star", "1.0.star", "1.0", seed, parent=SPIRAL, age=age)


@pytest.mark.parametrize("age, expected", [
    (0.01, StarStage.PROTOSTAR),
    (4.6, StarStage.MAIN_SEQUENCE),
    (10.5, StarStage.SUBGIANT),
    (11.5, StarStage.GIANT),
    (13.0, StarStage.WHITE_DWARF),
])
def test_sun_like_star_stage_by_age(age: float, expected: StarStage) -> None:
    assert resolve_stage(StarType.G, age, 7, DEFAULT_TAXONOMY) is expected


def test_m_dwarf_stays_on_main_sequence() -> None:
    for age in (0.1, 5.0, 13.6):
        assert resolve_stage(StarType.M, age, 7, DEFAULT_TAXONOMY) is StarStage.MAIN_SEQUENCE


def test_old_massive_star_collapses() -> None:
    stages = {resolve_stage(StarType.O, 2.0, seed, DEFAULT_TAXONOMY) for seed in _seeds()}
    assert stages == {StarStage.NEUTRON_STAR, StarStage.BLACK_HOLE}


def test_young_massive_star_is_on_main_sequence() -> None:
    assert resolve_stage(StarType.B, 0.02, 7, DEFAULT_TAXONOMY) is StarStage.MAIN_SEQUENCE


def test_remnant_weights_drive_supernova_branch() -> None:
    tables = DEFAULT_TAXONOMY.with_overrides({"remnants": {"O": {"BLACK_HOLE": 1}}})
    for seed in _seeds(50):
        assert resolve_stage(StarType.O, 2.0, seed, tables) is StarStage.BLACK_HOLE


def test_empty_remnant_row_raises() -> None:
    tables = DEFAULT_TAXONOMY.with_overrides({"remnants": {"O": {}}})
    with pytest.raises(NoValidCandidate):
        resolve_stage(StarType.O, 2.0, 7, tables)


def test_missing_lifetime_raises() -> None:
    tables = DEFAULT_TAXONOMY.with_overrides({"lifetimes": {"G": 0}})
    with pytest.raises(NoValidCandidate):
        resolve_stage(StarType.G, 4.6, 7, tables)


def test_star_never_draws_pop_iii_outside_o_b() -> None:
    tables = DEFAULT_TAXONOMY.with_overrides({
        "star_types": {"SPIRAL": {"G": 1}},
        "star_compositions": {"G": {"POP_III": 9, "POP_I": 1}},
    })
    for seed in _seeds(50):
        star = resolve_star(_star_ctx(seed), tables)
        assert star == SUN


def test_star_stage_errors_carry_context() -> None:
    tables = DEFAULT_TAXONOMY.with_overrides({
        "star_types": {"SPIRAL": {"O": 1}},
        "remnants": {"O": {}},
    })
    with pytest.raises(NoValidCandidate) as info:
        resolve_star(_star_ctx(11, age=3.0), tables)
    err = info.value
    assert err.level == "star"
    assert err.entity_id == "1.0.star"
    assert err.parent_id == "1.0"
    assert err.domain is Domain.STAGE
    assert "parent_id=1.0" in str(err)


def test_atmosphere_is_refined_to_composition() -> None:
    tables = DEFAULT_TAXONOMY.with_overrides({
        "planet_types": {"G": {"ROCKY": 1}},
        "planet_compositions": {"ROCKY": {"ROCKY_IRON_RICH": 1}},
        "planet_atmospheres": {"ROCKY": {"EARTHLIKE": 5, "THIN": 1}},
    })
    for seed in _seeds():
        planet = resolve_planet(_planet_ctx(seed), tables)
        assert planet == PlanetClass(
            PlanetType.ROCKY, PlanetComposition.ROCKY_IRON_RICH, AtmosphereType.THIN
        )


def test_compatible_first_draw_is_kept() -> None:
    tables = DEFAULT_TAXONOMY.with_overrides({
        "planet_types": {"G": {"ROCKY": 1}},
        "planet_compositions": {"ROCKY": {"ROCKY_SILICATE": 1}},
        "planet_atmospheres": {"ROCKY": {"EARTHLIKE": 1, "THIN": 1}},
    })
    atmospheres = {resolve_planet(_planet_ctx(seed), tables).atmosphere for seed in _seeds()}
    assert atmospheres == {AtmosphereType.EARTHLIKE, AtmosphereType.THIN}


def test_no_compatible_atmosphere_raises_with_context() -> None:
    tables = DEFAULT_TAXONOMY.with_overrides({
        "planet_types": {"G": {"ROCKY": 1}},
        "planet_compositions": {"ROCKY": {"ROCKY_IRON_RICH": 1}},
        "planet_atmospheres": {"ROCKY": {"EARTHLIKE": 1}},
    })
    with pytest.raises(NoValidCandidate) as info:
        resolve_planet(_planet_ctx(5), tables)
    assert info.value.level == "planet"
    assert info.value.entity_id == "1.0.p0"
    assert info.value.domain is Domain.ATMOSPHERE
    assert info.value.seed == 5


def test_default_planets_satisfy_joint_invariants() -> None:
    tables = DEFAULT_TAXONOMY
    for seed in _seeds(400):
        planet = resolve_planet(_planet_ctx(seed), tables)
        assert planet.composition in tables.valid_planet_compositions(planet.type)
        assert planet.atmosphere in tables.valid_planet_atmospheres(planet.type)
        assert planet.atmosphere in tables.compatible_atmospheres(planet.composition)


def test_resolve_dispatches_by_level() -> None:
    gas_giant = PlanetClass(
        PlanetType.GAS_GIANT, PlanetComposition.GAS_GIANT_H2_HE, AtmosphereType.H2_HE
    )
    ctx = LevelContext("satellite", "1.0.p0.s0", "1.0.p0", 3, parent=gas_giant)
    satellite = resolve(ctx, DEFAULT_TAXONOMY)
    assert isinstance(satellite, SatelliteClass)
    assert satellite.composition in DEFAULT_TAXONOMY.valid_satellite_compositions(satellite.type)

    with pytest.raises(ValueError):
        resolve(LevelContext("system", "1.0", "1", 3), DEFAULT_TAXONOMY)


def test_galaxy_brightness_comes_from_its_type_row() -> None:
    tables = DEFAULT_TAXONOMY.with_overrides({
        "galaxy_types": {"IRREGULAR": 1},
        "galaxy_brightness": {"IRREGULAR": {"FAINT": 1}},
    })
    galaxy = resolve_galaxy(LevelContext("galaxy", "1", None, 42), tables)
    assert galaxy == GalaxyClass(GalaxyType.IRREGULAR, GalaxyBrightness.FAINT)
