"""
universegen.py
==============
Deterministic hierarchical generator for synthetic universes.

Expands one 64-bit root seed into a full containment hierarchy::

    Galaxy → SolarSystem(s) → Star + Planet(s) → Satellite(s)

Every random choice below the root is keyed off a sub-seed derived from the
parent's seed, the child's local index, and a *domain tag* naming what the
draw is for.  Changing how one attribute is sampled therefore never perturbs
an unrelated attribute, and any subtree can be regenerated on its own from
its local seed.

Pipeline per entity
-------------------
1. Classification Resolver – pick category / composition / atmosphere /
   stage from the Taxonomy Tables, conditioned on the parent's resolved
   classification, and enforce the joint invariants.
2. Attribute Sampler – draw scalars (age, mass, radius, distance, …) from
   ``Range``s chosen by the resolved classification.

Usage (importable)
------------------
    from genconfig import GenerationConfig, Range
    from universegen import generate
    galaxy = generate(42, GenerationConfig(system_count=Range(3, 3)))

Integer rounding
----------------
Integer-valued attributes (coordinates, temperature, child counts) round
half-up: ``floor(v + 0.5)``.  The rule is applied in one place
(``_round_half_up``) so regeneration is bit-exact.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Mapping, Optional, Tuple

import numpy as np

from bodies import (
    Galaxy,
    GalaxyClass,
    PhysicalBody,
    Planet,
    PlanetClass,
    Satellite,
    SatelliteClass,
    SolarSystem,
    Star,
    StarClass,
)
from genconfig import GenerationConfig, Range
from generrors import GenerationError, InvalidRange, NoValidCandidate, SeedExhaustion
from taxonomy import (
    AtmosphereType,
    PlanetComposition,
    PlanetType,
    SatelliteComposition,
    StarStage,
    StarType,
    TERMINAL_STAGES,
    TaxonomyTables,
    Weights,
    allowed_star_compositions,
    candidates,
    stage_exit_ages,
    stage_transitions,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Seed Expander
# ---------------------------------------------------------------------------

SEED_SPACE = 2 ** 64    # parent seeds are unsigned 64-bit
MAX_FANOUT = 2 ** 32    # child indices and domain tags are unsigned 32-bit


class Domain(enum.IntEnum):
    """Sub-stream tags.  Values are part of the seed derivation: never renumber."""

    SYSTEM = 1
    STAR = 2
    PLANET = 3
    SATELLITE = 4

    TYPE = 10
    COMPOSITION = 11
    ATMOSPHERE = 12
    STAGE = 13
    BRIGHTNESS = 14

    AGE = 20
    MASS = 21
    RADIUS = 22
    LUMINOSITY = 23
    TEMPERATURE = 24
    COORDS = 25
    DISTANCE = 26
    ORBIT_ANGLE = 27

    COUNT = 30
    NAME = 31
    FLAGS = 32


SYSTEM_DOMAIN = Domain.SYSTEM


def expand(parent_seed: int, index: int, domain_tag: int) -> int:
    """Derive the child seed for ``(parent_seed, index, domain_tag)``.

    Pure and total over its domain.  Uses numpy's ``SeedSequence`` with the
    ``(domain_tag, index)`` pair as spawn key; its hashing is defined on
    32-bit words, so the result is identical on every platform.

    Parameters
    ----------
    parent_seed : unsigned 64-bit seed of the parent entity
    index       : local index of the child, ``0 <= index < 2**32``
    domain_tag  : what the derived seed is used for (see ``Domain``)

    Returns
    -------
    int in ``[0, 2**64)``
    """
    parent_seed = int(parent_seed)
    index = int(index)
    domain_tag = int(domain_tag)
    if not 0 <= parent_seed < SEED_SPACE:
        raise ValueError(f"Seed {parent_seed} is outside the unsigned 64-bit range")
    if not 0 <= domain_tag < MAX_FANOUT:
        raise ValueError(f"Domain tag {domain_tag} is outside the unsigned 32-bit range")
    if not 0 <= index < MAX_FANOUT:
        raise SeedExhaustion(
            f"Child index {index} exceeds the {MAX_FANOUT:,} sub-seeds "
            "available per parent and domain",
            domain=domain_tag, seed=parent_seed,
        )
    seq = np.random.SeedSequence(entropy=parent_seed, spawn_key=(domain_tag, index))
    return int(seq.generate_state(1, dtype=np.uint64)[0])


# ---------------------------------------------------------------------------
# Attribute Sampler
# ---------------------------------------------------------------------------

def _unit_draw(seed: int) -> float:
    """One uniform double in [0, 1) from a fresh PCG64 stream."""
    return float(np.random.default_rng(seed).random())


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def sample(seed: int, bounds: Range) -> float:
    """Uniform value in ``[bounds.min, bounds.max]``, deterministic in *seed*."""
    bounds.validate()
    if bounds.min == bounds.max:
        return float(bounds.min)
    value = bounds.min + _unit_draw(seed) * (bounds.max - bounds.min)
    return float(min(value, bounds.max))


def sample_int(seed: int, bounds: Range) -> int:
    """Integer counterpart of ``sample``; rounds half-up, then clamps."""
    bounds.validate()
    lo, hi = math.ceil(bounds.min), math.floor(bounds.max)
    if lo > hi:
        raise InvalidRange(f"Range {bounds} contains no integer")
    return min(max(_round_half_up(sample(seed, bounds)), lo), hi)


def chance(seed: int, probability: float) -> bool:
    """Bernoulli draw: True with *probability*."""
    return _unit_draw(seed) < probability


def weighted_choice(seed: int, weights: Weights):
    """Pick one value from a weighted row.

    The cumulative sum runs over the row in declaration order; the draw is
    located with ``searchsorted`` so equal weights resolve by position.
    """
    row = candidates(weights)
    if not row:
        raise NoValidCandidate("Candidate set is empty")
    values = [value for value, _ in row]
    cum = np.cumsum([weight for _, weight in row], dtype=np.float64)
    target = _unit_draw(seed) * cum[-1]
    idx = int(np.searchsorted(cum, target, side="right"))
    return values[min(idx, len(values) - 1)]


# ---------------------------------------------------------------------------
# Classification Resolver
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class LevelContext:
    """What the resolver knows about the entity being built.

    ``parent`` is the parent's resolved classification (``GalaxyClass`` for
    stars, ``StarClass`` for planets, ``PlanetClass`` for satellites).
    ``age`` is only needed for stars, whose stage depends on it.
    """

    level: str
    entity_id: str
    parent_id: Optional[str]
    seed: int
    parent: Any = None
    age: Optional[float] = None

    def error_context(self, domain: Optional[Domain] = None) -> dict:
        return {
            "level": self.level,
            "entity_id": self.entity_id,
            "parent_id": self.parent_id,
            "domain": domain,
            "seed": self.seed,
        }


def _pick(ctx: LevelContext, weights: Weights, domain: Domain, what: str, index: int = 0):
    if not candidates(weights):
        raise NoValidCandidate(f"No valid {what}", **ctx.error_context(domain))
    return weighted_choice(expand(ctx.seed, index, domain), weights)


def resolve_galaxy(ctx: LevelContext, tables: TaxonomyTables) -> GalaxyClass:
    galaxy_type = _pick(ctx, tables.galaxy_types, Domain.TYPE, "galaxy type")
    brightness = _pick(
        ctx, tables.galaxy_brightness.get(galaxy_type, ()), Domain.BRIGHTNESS,
        f"brightness for {galaxy_type.name} galaxy",
    )
    return GalaxyClass(galaxy_type, brightness)


def resolve_stage(star_type: StarType, age: float, seed: int, tables: TaxonomyTables) -> StarStage:
    """Advance a star along its evolutionary path until its age runs out.

    States are ``StarStage`` values.  Starting from PROTOSTAR, the star
    moves to the next stage whenever its age has passed the exit age of the
    current one.  Single-successor transitions are deterministic; the
    SUPERNOVA branch draws the remnant from ``tables.remnants``, restricted
    to the successors the path allows.  Terminal stages stop the walk.
    """
    lifetime = tables.lifetimes.get(star_type, 0.0)
    if lifetime <= 0:
        raise NoValidCandidate(f"No main-sequence lifetime for {star_type.name} stars")
    transitions = stage_transitions(star_type)
    exits = stage_exit_ages(star_type, lifetime)

    stage = StarStage.PROTOSTAR
    step = 0
    while stage in transitions and age >= exits[stage]:
        successors = transitions[stage]
        if len(successors) == 1:
            stage = successors[0]
        else:
            row = candidates(tables.remnants.get(star_type, ()), successors)
            if not row:
                raise NoValidCandidate(
                    f"No remnant candidates after {stage.name} for {star_type.name} stars"
                )
            stage = weighted_choice(expand(seed, step, Domain.STAGE), row)
        step += 1
    return stage


def resolve_star(ctx: LevelContext, tables: TaxonomyTables) -> StarClass:
    galaxy_type = ctx.parent.type
    star_type = _pick(
        ctx, tables.star_types.get(galaxy_type, ()), Domain.TYPE,
        f"star type in {galaxy_type.name} galaxy",
    )
    compositions = candidates(
        tables.star_compositions.get(star_type, ()),
        allowed_star_compositions(star_type),
    )
    composition = _pick(
        ctx, compositions, Domain.COMPOSITION, f"composition for {star_type.name} star"
    )
    if ctx.age is None:
        raise ValueError("Star resolution needs the system age")
    try:
        stage = resolve_stage(star_type, ctx.age, ctx.seed, tables)
    except GenerationError as exc:
        raise exc.with_context(**ctx.error_context(Domain.STAGE)) from exc
    return StarClass(star_type, stage, composition)


def resolve_planet(ctx: LevelContext, tables: TaxonomyTables) -> PlanetClass:
    """Type, then composition, then an atmosphere compatible with both.

    The atmosphere is first drawn from the type's row alone.  If that draw
    cannot coexist with the chosen composition it is re-drawn, on the next
    index of the ATMOSPHERE sub-stream, from the type's row restricted to
    the composition's compatible set.
    """
    star_type = ctx.parent.type
    planet_type = _pick(
        ctx, tables.planet_types.get(star_type, ()), Domain.TYPE,
        f"planet type around {star_type.name} star",
    )
    composition = _pick(
        ctx, tables.planet_compositions.get(planet_type, ()), Domain.COMPOSITION,
        f"composition for {planet_type.name} planet",
    )
    atmospheres = tables.planet_atmospheres.get(planet_type, ())
    atmosphere = _pick(
        ctx, atmospheres, Domain.ATMOSPHERE, f"atmosphere for {planet_type.name} planet"
    )
    compatible = tables.compatible_atmospheres(composition)
    if atmosphere not in compatible:
        atmosphere = _pick(
            ctx, candidates(atmospheres, compatible), Domain.ATMOSPHERE,
            f"atmosphere for {planet_type.name} planet compatible with {composition.name}",
            index=1,
        )
    return PlanetClass(planet_type, composition, atmosphere)


def resolve_satellite(ctx: LevelContext, tables: TaxonomyTables) -> SatelliteClass:
    planet_type = ctx.parent.type
    satellite_type = _pick(
        ctx, tables.satellite_types.get(planet_type, ()), Domain.TYPE,
        f"satellite type around {planet_type.name} planet",
    )
    composition = _pick(
        ctx, tables.satellite_compositions.get(satellite_type, ()), Domain.COMPOSITION,
        f"composition for {satellite_type.name} satellite",
    )
    return SatelliteClass(satellite_type, composition)


_RESOLVERS = {
    "galaxy": resolve_galaxy,
    "star": resolve_star,
    "planet": resolve_planet,
    "satellite": resolve_satellite,
}


def resolve(ctx: LevelContext, tables: TaxonomyTables):
    """Resolve the classification for ``ctx.level``."""
    try:
        resolver = _RESOLVERS[ctx.level]
    except KeyError:
        raise ValueError(f"No classification exists for level '{ctx.level}'") from None
    return resolver(ctx, tables)


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

_PREFIXES = [
    "Ald", "Bel", "Cor", "Den", "Eri", "Fom", "Gal", "Hyd", "Ith",
    "Jov", "Kep", "Lyr", "Mir", "Neb", "Ori", "Pol", "Qua", "Rig",
    "Sol", "Tau", "Ult", "Veg", "Wol", "Xen", "Ygg", "Zan",
]

_SUFFIXES = [
    "aris", "eon", "ix", "us", "ara", "ion", "ax", "is", "or",
    "ium", "oth", "ael", "ine", "ova", "ux", "enn", "ark", "os",
]

_DESIGNATIONS = [
    "Alpha", "Beta", "Gamma", "Delta", "Epsilon", "Zeta", "Eta",
    "Theta", "Iota", "Kappa", "Lambda", "Mu", "Nu", "Xi", "Omicron",
    "Pi", "Rho", "Sigma", "Tau", "Upsilon", "Phi", "Chi", "Psi", "Omega",
]

_CATALOGUES = ["HD", "GJ", "HR", "TYC", "KOI"]

_PLANET_LETTERS = "bcdefghijklmnopqrstuvwxyz"

_ROMAN = [
    (1000, "M"), (900, "CM"), (500, "D"), (400, "CD"), (100, "C"), (90, "XC"),
    (50, "L"), (40, "XL"), (10, "X"), (9, "IX"), (5, "V"), (4, "IV"), (1, "I"),
]


def proper_name(seed: int) -> str:
    """Two-syllable name such as "Aldaris"."""
    rng = np.random.default_rng(expand(seed, 0, Domain.NAME))
    return _PREFIXES[rng.integers(len(_PREFIXES))] + _SUFFIXES[rng.integers(len(_SUFFIXES))]


def system_name(seed: int) -> str:
    """Procedural system name in one of three styles."""
    rng = np.random.default_rng(expand(seed, 1, Domain.NAME))
    style = int(rng.integers(3))
    if style == 0:
        return proper_name(seed)
    if style == 1:
        return f"{proper_name(seed)} {_DESIGNATIONS[rng.integers(len(_DESIGNATIONS))]}"
    catalogue = _CATALOGUES[rng.integers(len(_CATALOGUES))]
    return f"{catalogue}-{int(rng.integers(1000, 100_000))}"


def planet_letter(index: int) -> str:
    """``b``, ``c``, … ``z``, then ``b2``, ``c2``, …"""
    letter = _PLANET_LETTERS[index % len(_PLANET_LETTERS)]
    cycle = index // len(_PLANET_LETTERS)
    return letter if cycle == 0 else f"{letter}{cycle + 1}"


def roman(number: int) -> str:
    out = []
    for value, numeral in _ROMAN:
        while number >= value:
            out.append(numeral)
            number -= value
    return "".join(out)


# ---------------------------------------------------------------------------
# Derived star and planet properties
# ---------------------------------------------------------------------------

STAR_COLORS = {
    StarType.O: "blue",
    StarType.B: "blue-white",
    StarType.A: "white",
    StarType.F: "yellow-white",
    StarType.G: "yellow",
    StarType.K: "orange",
    StarType.M: "red",
}

# Remnants no longer look like their spectral type.
REMNANT_COLORS = {
    StarStage.WHITE_DWARF: "white",
    StarStage.NEUTRON_STAR: "blue-white",
    StarStage.BLACK_HOLE: "black",
}

PLANET_COLORS = {
    PlanetComposition.ROCKY_SILICATE: "grey-brown",
    PlanetComposition.ROCKY_IRON_RICH: "rust red",
    PlanetComposition.CARBON_WORLD: "charcoal",
    PlanetComposition.OCEAN_WORLD: "deep blue",
    PlanetComposition.GAS_GIANT_H2_HE: "banded tan",
    PlanetComposition.ICE_GIANT_H2_HE_CH4: "cyan",
    PlanetComposition.LAVA_WORLD: "glowing orange",
    PlanetComposition.DESERT_WORLD: "ochre",
    PlanetComposition.DWARF_ICE_ROCK: "pale grey",
}

SATELLITE_COLORS = {
    SatelliteComposition.ROCKY_SILICATE: "grey",
    SatelliteComposition.ICE_RICH: "white",
    SatelliteComposition.MIXED_ICE_ROCK: "grey-white",
    SatelliteComposition.METALLIC_FRAGMENT: "dark grey",
    SatelliteComposition.RUBBLE_PILE: "brown-grey",
}

# (upper luminosity bound in L☉, label), ascending
_BRIGHTNESS_BANDS = [(0.1, "dim"), (10.0, "moderate"), (1000.0, "bright")]

# Habitable-zone edges in AU, scaled by sqrt(L / L☉)
HZ_INNER = 0.95
HZ_OUTER = 1.67
_HABITABLE_STAGES = frozenset({StarStage.MAIN_SEQUENCE, StarStage.SUBGIANT})

_FULL_TURN = Range(0.0, 2.0 * math.pi)


def star_color(classification: StarClass) -> str:
    return REMNANT_COLORS.get(classification.stage, STAR_COLORS[classification.type])


def brightness_label(luminosity: float) -> str:
    for upper, label in _BRIGHTNESS_BANDS:
        if luminosity < upper:
            return label
    return "brilliant"


def in_habitable_zone(distance: float, luminosity: float) -> bool:
    scaled = distance / math.sqrt(max(luminosity, 1e-12))
    return HZ_INNER <= scaled < HZ_OUTER


def is_habitable(classification: PlanetClass, star: Star, distance: float) -> bool:
    return (
        classification.type is PlanetType.ROCKY
        and classification.atmosphere is AtmosphereType.EARTHLIKE
        and star.stage in _HABITABLE_STAGES
        and in_habitable_zone(distance, star.luminosity)
    )


def polar_coords(radius: float, angle: float) -> Tuple[int, int]:
    return (
        _round_half_up(radius * math.cos(angle)),
        _round_half_up(radius * math.sin(angle)),
    )


# ---------------------------------------------------------------------------
# Hierarchy Builder
# ---------------------------------------------------------------------------

class UniverseGenerator:
    """Top-down builder for the Galaxy → SolarSystem → Star/Planet → Satellite graph.

    Parameters
    ----------
    cfg : GenerationConfig
        Ranges, taxonomy tables and execution settings.  Only read, never
        mutated, so one generator can serve many seeds and threads.
    """

    def __init__(self, cfg: GenerationConfig) -> None:
        self.cfg = cfg
        self.tables = cfg.taxonomy

    # ------------------------------------------------------------------
    # Draw helpers (attach entity context to sampler failures)
    # ------------------------------------------------------------------

    def _draw(
        self,
        ctx: LevelContext,
        domain: Domain,
        bounds: Range,
        index: int = 0,
        ceiling: Optional[float] = None,
        integer: bool = False,
    ):
        try:
            if ceiling is not None:
                bounds = _capped(bounds, ceiling)
            seed = expand(ctx.seed, index, domain)
            return sample_int(seed, bounds) if integer else sample(seed, bounds)
        except GenerationError as exc:
            raise exc.with_context(**ctx.error_context(domain)) from exc

    def _count(self, ctx: LevelContext, bounds: Range) -> int:
        count = self._draw(ctx, Domain.COUNT, bounds, integer=True)
        if count < 0:
            raise InvalidRange(
                f"Child count range {bounds} allows negative counts",
                **ctx.error_context(Domain.COUNT),
            )
        if count > MAX_FANOUT:
            raise SeedExhaustion(
                f"{count:,} children exceed the {MAX_FANOUT:,} sub-seeds per parent",
                **ctx.error_context(Domain.COUNT),
            )
        return count

    def _flag(self, ctx: LevelContext, probability: float) -> bool:
        return chance(expand(ctx.seed, 0, Domain.FLAGS), probability)

    @staticmethod
    def _row(table: Mapping, key: enum.Enum, what: str, ctx: LevelContext):
        try:
            return table[key]
        except KeyError:
            raise InvalidRange(
                f"No {what} configured for {key.name}", **ctx.error_context()
            ) from None

    # ------------------------------------------------------------------
    # Stage A: galaxy
    # ------------------------------------------------------------------

    def build_galaxy_header(self, root_seed: int) -> Galaxy:
        """Resolve the galaxy's own fields; ``solar_systems`` is left empty."""
        cfg = self.cfg
        ctx = LevelContext("galaxy", str(cfg.galaxy_id), None, int(root_seed))
        classification = resolve_galaxy(ctx, self.tables)
        age = self._draw(ctx, Domain.AGE, cfg.galaxy_age)
        if age < 0:
            raise InvalidRange(
                f"Galaxy age range {cfg.galaxy_age} allows negative ages",
                **ctx.error_context(Domain.AGE),
            )
        black_hole = self._flag(
            ctx, self.tables.black_hole_chance.get(classification.type, 0.0)
        )
        name = cfg.galaxy_name or f"{proper_name(ctx.seed)} Galaxy"
        return Galaxy(
            id=ctx.entity_id,
            name=name,
            classification=classification,
            age=age,
            black_hole_presence=black_hole,
            seed=ctx.seed,
        )

    # ------------------------------------------------------------------
    # Stage B: solar systems and their bodies
    # ------------------------------------------------------------------

    def build_system(self, system_seed: int, index: int, galaxy: Galaxy) -> SolarSystem:
        """Build solar system *index* of *galaxy* from its own seed.

        ``system_seed`` is ``expand(galaxy.seed, index, Domain.SYSTEM)``
        during a full run; calling this directly regenerates that subtree.
        """
        cfg = self.cfg
        system_id = f"{galaxy.id}.{index}"
        ctx = LevelContext(
            "system", system_id, galaxy.id, int(system_seed), parent=galaxy.classification
        )
        name = system_name(ctx.seed)
        coords = (
            self._draw(ctx, Domain.COORDS, cfg.galaxy_coords, index=0, integer=True),
            self._draw(ctx, Domain.COORDS, cfg.galaxy_coords, index=1, integer=True),
        )
        age = self._draw(ctx, Domain.AGE, cfg.system_age, ceiling=galaxy.age)

        star = self.build_star(
            expand(ctx.seed, 0, Domain.STAR), system_id, name, age, galaxy.classification
        )
        n_planets = self._count(ctx, cfg.planet_count)
        planets = tuple(
            self.build_planet(expand(ctx.seed, j, Domain.PLANET), j, system_id, name, star)
            for j in range(n_planets)
        )
        log.debug("  system %s '%s': %s/%s star, %d planets",
                  system_id, name, star.type.name, star.stage.name, len(planets))
        return SolarSystem(
            id=system_id,
            name=name,
            coords=coords,
            seed=ctx.seed,
            age=age,
            star=star,
            planets=planets,
        )

    def build_star(
        self,
        star_seed: int,
        system_id: str,
        system_name: str,
        age: float,
        galaxy_class: GalaxyClass,
    ) -> Star:
        """The system's star sits at the system origin and shares its age."""
        cfg = self.cfg
        ctx = LevelContext(
            "star", f"{system_id}.star", system_id, int(star_seed),
            parent=galaxy_class, age=age,
        )
        classification = resolve_star(ctx, self.tables)
        try:
            ranges = cfg.star_ranges_for(classification.type, classification.stage)
        except GenerationError as exc:
            raise exc.with_context(**ctx.error_context()) from exc

        mass = self._draw(ctx, Domain.MASS, ranges.mass)
        radius = self._draw(ctx, Domain.RADIUS, ranges.radius)
        luminosity = self._draw(ctx, Domain.LUMINOSITY, ranges.luminosity)
        temperature = self._draw(ctx, Domain.TEMPERATURE, ranges.temperature, integer=True)
        flare_active = (
            classification.stage not in TERMINAL_STAGES
            and self._flag(ctx, self.tables.flare_chance.get(classification.type, 0.0))
        )
        body = PhysicalBody(
            ctx.entity_id, system_name, (0, 0), age, mass, radius,
            color=star_color(classification),
        )
        return Star(
            body=body,
            classification=classification,
            luminosity=luminosity,
            temperature=temperature,
            flare_active=flare_active,
            brightness=brightness_label(luminosity),
        )

    def build_planet(
        self,
        planet_seed: int,
        index: int,
        system_id: str,
        system_name: str,
        star: Star,
    ) -> Planet:
        cfg = self.cfg
        ctx = LevelContext(
            "planet", f"{system_id}.p{index}", system_id, int(planet_seed),
            parent=star.classification,
        )
        classification = resolve_planet(ctx, self.tables)
        ranges = self._row(cfg.planet_ranges, classification.type, "planet ranges", ctx)

        age = star.age * self._draw(ctx, Domain.AGE, cfg.planet_age_fraction, ceiling=1.0)
        mass = self._draw(ctx, Domain.MASS, ranges.mass)
        radius = self._draw(ctx, Domain.RADIUS, ranges.radius)
        distance = self._draw(ctx, Domain.DISTANCE, ranges.distance)
        angle = self._draw(ctx, Domain.ORBIT_ANGLE, _FULL_TURN)
        coords = polar_coords(distance * cfg.system_grid, angle)
        has_rings = self._flag(ctx, self.tables.ring_chance.get(classification.type, 0.0))

        body = PhysicalBody(
            ctx.entity_id, f"{system_name} {planet_letter(index)}", coords, age, mass, radius,
            color=PLANET_COLORS[classification.composition],
        )
        count_range = self._row(
            cfg.satellite_count, classification.type, "satellite count", ctx
        )
        n_satellites = self._count(ctx, count_range)
        satellites = tuple(
            self.build_satellite(
                expand(ctx.seed, k, Domain.SATELLITE), k, body, classification
            )
            for k in range(n_satellites)
        )
        return Planet(
            body=body,
            classification=classification,
            distance_from_star=distance,
            is_habitable=is_habitable(classification, star, distance),
            has_rings=has_rings,
            satellites=satellites,
        )

    def build_satellite(
        self,
        satellite_seed: int,
        index: int,
        planet: PhysicalBody,
        planet_class: PlanetClass,
    ) -> Satellite:
        """Satellites never outweigh, outgrow or outlive the planet they orbit."""
        cfg = self.cfg
        ctx = LevelContext(
            "satellite", f"{planet.id}.s{index}", planet.id, int(satellite_seed),
            parent=planet_class,
        )
        classification = resolve_satellite(ctx, self.tables)
        ranges = self._row(cfg.satellite_ranges, classification.type, "satellite ranges", ctx)

        age = planet.age * self._draw(ctx, Domain.AGE, cfg.satellite_age_fraction, ceiling=1.0)
        mass = self._draw(ctx, Domain.MASS, ranges.mass, ceiling=planet.mass)
        radius = self._draw(ctx, Domain.RADIUS, ranges.radius, ceiling=planet.radius)
        distance = self._draw(ctx, Domain.DISTANCE, ranges.distance)
        angle = self._draw(ctx, Domain.ORBIT_ANGLE, _FULL_TURN)

        body = PhysicalBody(
            ctx.entity_id, f"{planet.name} {roman(index + 1)}",
            polar_coords(distance, angle), age, mass, radius,
            color=SATELLITE_COLORS[classification.composition],
        )
        return Satellite(
            body=body,
            classification=classification,
            planet_id=planet.id,
            distance_from_planet=distance,
        )

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self, root_seed: int) -> Galaxy:
        """Generate the whole galaxy for *root_seed*.

        Stages
        ------
        A – resolve the galaxy's classification and scalars.
        B – build every solar system from ``expand(root_seed, i, SYSTEM)``,
            on ``cfg.workers`` threads.  Systems are collected in index
            order, so the result does not depend on the worker count.

        Any failure aborts the run; no partially built galaxy is returned.
        """
        cfg = self.cfg
        t_start = time.perf_counter()

        log.info("Stage A: resolving galaxy from seed %d …", root_seed)
        header = self.build_galaxy_header(root_seed)
        ctx = LevelContext("galaxy", header.id, None, header.seed)
        n_systems = self._count(ctx, cfg.system_count)
        log.info("  %s galaxy '%s', age %.2f Gyr",
                 header.type.name, header.name, header.age)

        log.info("Stage B: building %d solar systems (%d worker%s) …",
                 n_systems, cfg.workers, "" if cfg.workers == 1 else "s")
        t0 = time.perf_counter()
        seeds = [expand(header.seed, i, Domain.SYSTEM) for i in range(n_systems)]

        def build(i: int) -> SolarSystem:
            return self.build_system(seeds[i], i, header)

        if cfg.workers > 1 and n_systems > 1:
            with ThreadPoolExecutor(max_workers=cfg.workers) as pool:
                systems = tuple(pool.map(build, range(n_systems)))
        else:
            systems = tuple(build(i) for i in range(n_systems))

        galaxy = dataclasses.replace(header, solar_systems=systems)
        n_planets = sum(len(s.planets) for s in systems)
        n_satellites = sum(1 for s in systems for _ in s.satellites())
        log.info("  %d systems, %d planets, %d satellites built in %.2fs",
                 len(systems), n_planets, n_satellites, time.perf_counter() - t0)
        log.info("Total time: %.2fs", time.perf_counter() - t_start)
        return galaxy


def _capped(bounds: Range, ceiling: float) -> Range:
    """*bounds* with its upper end lowered to *ceiling*."""
    bounds.validate()
    if bounds.min > ceiling:
        raise InvalidRange(f"Range {bounds} lies entirely above the limit {ceiling}")
    return Range(bounds.min, min(bounds.max, ceiling))


def generate(root_seed: int, cfg: Optional[GenerationConfig] = None) -> Galaxy:
    """Generate a galaxy from *root_seed* (defaults for anything not configured)."""
    return UniverseGenerator(cfg if cfg is not None else GenerationConfig()).run(root_seed)
