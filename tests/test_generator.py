"""End-to-end tests for the hierarchy builder."""
from __future__ import annotations

import dataclasses
import logging
import math

import pytest

from genconfig import BodyRanges, GenerationConfig, Range
from generrors import InvalidRange, NoValidCandidate
from taxonomy import (
    AtmosphereType,
    GalaxyType,
    PlanetType,
    StarComposition,
    StarStage,
    StarType,
    is_valid_evolution,
)
from universegen import (
    PLANET_COLORS,
    SATELLITE_COLORS,
    SYSTEM_DOMAIN,
    Domain,
    UniverseGenerator,
    expand,
    generate,
)


def _rocky_only(cfg: GenerationConfig, **overrides) -> GenerationConfig:
    taxonomy = cfg.taxonomy.with_overrides({
        "planet_types": {t.name: {"ROCKY": 1} for t in StarType},
        **overrides,
    })
    return dataclasses.replace(cfg, taxonomy=taxonomy)


def test_generation_is_deterministic(small_cfg: GenerationConfig) -> None:
    assert generate(7, small_cfg) == generate(7, small_cfg)


def test_worker_count_does_not_change_output(small_cfg: GenerationConfig) -> None:
    threaded = dataclasses.replace(small_cfg, workers=4)
    assert generate(11, small_cfg) == generate(11, threaded)


def test_different_seeds_give_different_galaxies(small_cfg: GenerationConfig) -> None:
    assert generate(1, small_cfg) != generate(2, small_cfg)


def test_identifiers_follow_the_hierarchy(small_cfg: GenerationConfig) -> None:
    galaxy = generate(5, small_cfg)
    assert galaxy.id == "1"
    assert [s.id for s in galaxy.solar_systems] == ["1.0", "1.1", "1.2"]
    for system in galaxy.solar_systems:
        assert system.star.id == f"{system.id}.star"
        for j, planet in enumerate(system.planets):
            assert planet.id == f"{system.id}.p{j}"
            for k, satellite in enumerate(planet.satellites):
                assert satellite.id == f"{planet.id}.s{k}"
                assert satellite.planet_id == planet.id
    assert galaxy.find("1.1") is galaxy.solar_systems[1]
    assert galaxy.find("1.0.star") is galaxy.solar_systems[0].star
    assert galaxy.find("nowhere") is None


def test_child_seeds_come_from_the_expander(small_cfg: GenerationConfig) -> None:
    galaxy = generate(5, small_cfg)
    assert galaxy.seed == 5
    for i, system in enumerate(galaxy.solar_systems):
        assert system.seed == expand(5, i, SYSTEM_DOMAIN)


def test_sun_like_system_regenerates_alone(sun_cfg: GenerationConfig) -> None:
    galaxy = generate(42, sun_cfg)
    assert len(galaxy.solar_systems) == 3
    star = galaxy.solar_systems[0].star
    assert star.type is StarType.G
    assert star.stage is StarStage.MAIN_SEQUENCE
    assert star.composition is StarComposition.POP_I
    assert star.color == "yellow"

    for _ in range(2):
        gen = UniverseGenerator(sun_cfg)
        header = gen.build_galaxy_header(42)
        rebuilt = gen.build_system(expand(42, 0, SYSTEM_DOMAIN), 0, header)
        assert rebuilt == galaxy.solar_systems[0]


def test_empty_rocky_composition_names_the_planet_parent(small_cfg: GenerationConfig) -> None:
    cfg = _rocky_only(small_cfg, planet_compositions={"ROCKY": {}})
    with pytest.raises(NoValidCandidate) as info:
        generate(42, cfg)
    err = info.value
    assert err.level == "planet"
    assert err.parent_id == "1.0"
    assert err.entity_id == "1.0.p0"
    assert err.domain is Domain.COMPOSITION
    assert err.seed == expand(expand(42, 0, SYSTEM_DOMAIN), 0, Domain.PLANET)


def test_threaded_failure_reports_first_system(small_cfg: GenerationConfig) -> None:
    cfg = dataclasses.replace(
        _rocky_only(small_cfg, planet_compositions={"ROCKY": {}}), workers=3
    )
    with pytest.raises(NoValidCandidate) as info:
        generate(42, cfg)
    assert info.value.parent_id == "1.0"


def test_system_age_above_galaxy_age_raises() -> None:
    cfg = GenerationConfig(
        system_count=Range(2, 2), galaxy_age=Range(1.0, 2.0), system_age=Range(5.0, 6.0)
    )
    with pytest.raises(InvalidRange) as info:
        generate(3, cfg)
    assert info.value.level == "system"
    assert info.value.entity_id == "1.0"
    assert info.value.domain is Domain.AGE


def test_inverted_count_range_raises() -> None:
    cfg = GenerationConfig(system_count=Range(2, 2), planet_count=Range(3, 1))
    with pytest.raises(InvalidRange) as info:
        generate(3, cfg)
    assert info.value.domain is Domain.COUNT
    assert info.value.level == "system"


def test_ages_nest_and_ranges_hold(small_cfg: GenerationConfig) -> None:
    cfg = dataclasses.replace(small_cfg, system_count=Range(6, 6))
    for seed in range(4):
        galaxy = generate(seed, cfg)
        assert cfg.galaxy_age.contains(galaxy.age)
        for system in galaxy.solar_systems:
            star = system.star
            assert system.age <= galaxy.age
            assert star.age == system.age
            assert star.coords == (0, 0)
            assert is_valid_evolution(star.type, star.stage)
            star_ranges = cfg.star_ranges_for(star.type, star.stage)
            assert star_ranges.mass.contains(star.mass)
            assert star_ranges.radius.contains(star.radius)
            assert star_ranges.luminosity.contains(star.luminosity)
            assert star_ranges.temperature.contains(star.temperature)
            for planet in system.planets:
                ranges = cfg.planet_ranges[planet.type]
                assert planet.age <= star.age
                assert ranges.mass.contains(planet.mass)
                assert ranges.distance.contains(planet.distance_from_star)
                assert planet.color == PLANET_COLORS[planet.composition]
                reach = planet.distance_from_star * cfg.system_grid
                assert math.hypot(*planet.coords) == pytest.approx(reach, abs=1.0)
                for satellite in planet.satellites:
                    assert satellite.age <= planet.age
                    assert satellite.mass <= planet.mass
                    assert satellite.radius <= planet.radius
                    assert cfg.satellite_ranges[satellite.type].radius.contains(satellite.radius)
                    assert satellite.color == SATELLITE_COLORS[satellite.composition]


def test_moons_of_dwarf_planets_stay_smaller(small_cfg: GenerationConfig) -> None:
    taxonomy = small_cfg.taxonomy.with_overrides({
        "planet_types": {t.name: {"DWARF": 1} for t in StarType},
    })
    counts = dict(small_cfg.satellite_count)
    counts[PlanetType.DWARF] = Range(3, 3)
    cfg = dataclasses.replace(
        small_cfg, taxonomy=taxonomy, satellite_count=counts, planet_count=Range(4, 4)
    )
    satellites = 0
    for seed in range(5):
        for system in generate(seed, cfg).solar_systems:
            for planet in system.planets:
                for satellite in planet.satellites:
                    satellites += 1
                    assert satellite.radius <= planet.radius
                    assert satellite.mass <= planet.mass
    assert satellites == 5 * 3 * 4 * 3


def _aged_g_stars(sun_cfg: GenerationConfig, system_age: Range, **lifetimes) -> GenerationConfig:
    taxonomy = sun_cfg.taxonomy
    if lifetimes:
        taxonomy = taxonomy.with_overrides({"lifetimes": lifetimes})
    return dataclasses.replace(
        sun_cfg, taxonomy=taxonomy, galaxy_age=Range(12.5, 13.6), system_age=system_age
    )


def test_remnant_ranges_replace_spectral_ranges(sun_cfg: GenerationConfig) -> None:
    cfg = _aged_g_stars(sun_cfg, Range(2.0, 3.0), G=0.5)
    white_dwarf = cfg.remnant_ranges[StarStage.WHITE_DWARF]
    for system in generate(8, cfg).solar_systems:
        star = system.star
        assert star.stage is StarStage.WHITE_DWARF
        assert white_dwarf.radius.contains(star.radius)
        assert white_dwarf.temperature.contains(star.temperature)
        assert white_dwarf.luminosity.contains(star.luminosity)
        assert star.brightness == "dim"
        assert star.color == "white"
        assert star.flare_active is False


@pytest.mark.parametrize("stage, system_age", [
    (StarStage.SUBGIANT, Range(10.2, 10.9)),
    (StarStage.GIANT, Range(11.2, 11.9)),
])
def test_evolved_stars_outgrow_the_main_sequence(
    sun_cfg: GenerationConfig, stage: StarStage, system_age: Range
) -> None:
    cfg = _aged_g_stars(sun_cfg, system_age)
    main_sequence = cfg.star_ranges[StarType.G]
    evolved = cfg.star_ranges_for(StarType.G, stage)
    for system in generate(21, cfg).solar_systems:
        star = system.star
        assert star.stage is stage
        assert evolved.radius.contains(star.radius)
        assert evolved.luminosity.contains(star.luminosity)
        assert star.radius > main_sequence.radius.max
        assert star.luminosity > main_sequence.luminosity.max
        assert star.color == "yellow"


def test_black_holes_emit_nothing(small_cfg: GenerationConfig) -> None:
    taxonomy = small_cfg.taxonomy.with_overrides({
        "star_types": {t.name: {"O": 1} for t in GalaxyType},
        "remnants": {"O": {"BLACK_HOLE": 1}},
    })
    cfg = dataclasses.replace(
        small_cfg, taxonomy=taxonomy, galaxy_age=Range(5.0, 13.6), system_age=Range(1.0, 2.0)
    )
    for system in generate(4, cfg).solar_systems:
        star = system.star
        assert star.stage is StarStage.BLACK_HOLE
        assert star.luminosity == 0.0
        assert star.temperature == 0
        assert star.brightness == "dim"
        assert star.color == "black"
        assert cfg.remnant_ranges[StarStage.BLACK_HOLE].radius.contains(star.radius)


def test_habitable_zone_planets(sun_cfg: GenerationConfig) -> None:
    ranges = dict(sun_cfg.planet_ranges)
    rocky = ranges[PlanetType.ROCKY]
    ranges[PlanetType.ROCKY] = BodyRanges(rocky.mass, rocky.radius, Range(1.2, 1.25))
    cfg = dataclasses.replace(
        _rocky_only(
            sun_cfg,
            planet_compositions={"ROCKY": {"ROCKY_SILICATE": 1}},
            planet_atmospheres={"ROCKY": {"EARTHLIKE": 1}},
        ),
        planet_count=Range(1, 3),
        planet_ranges=ranges,
    )
    galaxy = generate(42, cfg)
    planets = [p for s in galaxy.solar_systems for p in s.planets]
    assert planets
    assert all(p.is_habitable for p in planets)
    assert all(p.atmosphere is AtmosphereType.EARTHLIKE for p in planets)


def test_habitability_requires_earthlike_rocky(small_cfg: GenerationConfig) -> None:
    cfg = dataclasses.replace(small_cfg, system_count=Range(8, 8))
    for seed in range(3):
        for _, body, _ in generate(seed, cfg).iter_bodies():
            if getattr(body, "is_habitable", False):
                assert body.type is PlanetType.ROCKY
                assert body.atmosphere is AtmosphereType.EARTHLIKE


def test_names(small_cfg: GenerationConfig) -> None:
    cfg = dataclasses.replace(small_cfg, planet_count=Range(2, 2))
    galaxy = generate(9, cfg)
    assert galaxy.name.endswith(" Galaxy")
    for system in galaxy.solar_systems:
        assert system.star.name == system.name
        assert [p.name for p in system.planets] == [f"{system.name} b", f"{system.name} c"]
        for planet in system.planets:
            for k, satellite in enumerate(planet.satellites[:3]):
                assert satellite.name == f"{planet.name} {['I', 'II', 'III'][k]}"

    named = dataclasses.replace(cfg, galaxy_name="Milky Way")
    assert generate(9, named).name == "Milky Way"


def test_iter_bodies_walks_in_index_order(small_cfg: GenerationConfig) -> None:
    galaxy = generate(4, small_cfg)
    levels = [level for level, _, _ in galaxy.iter_bodies()]
    assert levels[0] == "star"
    assert levels.count("star") == 3
    system = galaxy.solar_systems[0]
    walk = list(galaxy.iter_bodies())
    assert walk[0] == ("star", system.star, system.id)
    assert walk[1] == ("planet", system.planets[0], system.id)
    assert len(walk) == sum(
        1 + len(s.planets) + sum(len(p.satellites) for p in s.planets)
        for s in galaxy.solar_systems
    )


def test_run_logs_stages(small_cfg: GenerationConfig, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="universegen")
    generate(1, small_cfg)
    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("Stage A") for m in messages)
    assert any(m.startswith("Stage B: building 3 solar systems") for m in messages)
