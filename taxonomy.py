"""
taxonomy.py
===========
Classification vocabulary and Taxonomy Tables for the universe generator.

The relationships between classifications (which compositions a planet type
may carry, which atmospheres a composition can hold, how a spectral type
evolves) are data here, consulted by the Classification Resolver in
``universegen``.  Nothing in this module draws random numbers.

Weighted rows
-------------
A row is a tuple of ``(value, weight)`` pairs.  Weights are relative (they
need not sum to 1) and their *order* matters: the resolver walks the row in
declaration order, so ties and cumulative sums never depend on dict or set
iteration order.  A value with weight ``<= 0`` is not a candidate.

Overrides
---------
Tables are loadable from JSON-shaped data::

    DEFAULT_TAXONOMY.with_overrides({
        "star_types": {"SPIRAL": {"G": 1.0}},
        "planet_compositions": {"ROCKY": {}},      # empty → no candidates
    })

Only the rows named in the override are replaced; everything else keeps the
defaults.
"""

from __future__ import annotations

import dataclasses
import enum
import math
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, TypeVar

from generrors import TaxonomyError


# ---------------------------------------------------------------------------
# Classification enums
# ---------------------------------------------------------------------------

class GalaxyType(enum.Enum):
    SPIRAL = "SPIRAL"
    ELLIPTICAL = "ELLIPTICAL"
    IRREGULAR = "IRREGULAR"


class GalaxyBrightness(enum.Enum):
    FAINT = "FAINT"
    MODERATE = "MODERATE"
    BRIGHT = "BRIGHT"
    VERY_BRIGHT = "VERY_BRIGHT"


class StarType(enum.Enum):
    """Harvard spectral class, hottest to coolest."""

    O = "O"
    B = "B"
    A = "A"
    F = "F"
    G = "G"
    K = "K"
    M = "M"


class StarStage(enum.Enum):
    PROTOSTAR = "PROTOSTAR"
    MAIN_SEQUENCE = "MAIN_SEQUENCE"
    SUBGIANT = "SUBGIANT"
    GIANT = "GIANT"
    SUPERNOVA = "SUPERNOVA"
    WHITE_DWARF = "WHITE_DWARF"
    NEUTRON_STAR = "NEUTRON_STAR"
    BLACK_HOLE = "BLACK_HOLE"


class StarComposition(enum.Enum):
    """Stellar population (metallicity class)."""

    POP_I = "POP_I"
    POP_II = "POP_II"
    POP_III = "POP_III"


class PlanetType(enum.Enum):
    ROCKY = "ROCKY"
    GAS_GIANT = "GAS_GIANT"
    ICE_GIANT = "ICE_GIANT"
    OCEAN = "OCEAN"
    DESERT = "DESERT"
    LAVA = "LAVA"
    DWARF = "DWARF"


class PlanetComposition(enum.Enum):
    ROCKY_SILICATE = "ROCKY_SILICATE"
    ROCKY_IRON_RICH = "ROCKY_IRON_RICH"
    CARBON_WORLD = "CARBON_WORLD"
    OCEAN_WORLD = "OCEAN_WORLD"
    GAS_GIANT_H2_HE = "GAS_GIANT_H2_HE"
    ICE_GIANT_H2_HE_CH4 = "ICE_GIANT_H2_HE_CH4"
    LAVA_WORLD = "LAVA_WORLD"
    DESERT_WORLD = "DESERT_WORLD"
    DWARF_ICE_ROCK = "DWARF_ICE_ROCK"


class AtmosphereType(enum.Enum):
    NONE = "NONE"
    THIN = "THIN"
    EARTHLIKE = "EARTHLIKE"
    DENSE = "DENSE"
    TOXIC = "TOXIC"
    CO2 = "CO2"
    METHANE = "METHANE"
    H2_HE = "H2_HE"


class SatelliteType(enum.Enum):
    REGULAR = "REGULAR"
    IRREGULAR = "IRREGULAR"
    CAPTURED = "CAPTURED"


class SatelliteComposition(enum.Enum):
    ROCKY_SILICATE = "ROCKY_SILICATE"
    ICE_RICH = "ICE_RICH"
    MIXED_ICE_ROCK = "MIXED_ICE_ROCK"
    METALLIC_FRAGMENT = "METALLIC_FRAGMENT"
    RUBBLE_PILE = "RUBBLE_PILE"


E = TypeVar("E", bound=enum.Enum)
Weights = Tuple[Tuple[E, float], ...]


def candidates(weights: Weights, allowed: Optional[Iterable[E]] = None) -> Weights:
    """Return the usable part of *weights*, in declaration order.

    Drops non-positive weights and, when *allowed* is given, every value not
    in it.
    """
    allowed_set = None if allowed is None else frozenset(allowed)
    return tuple(
        (value, weight)
        for value, weight in weights
        if weight > 0 and (allowed_set is None or value in allowed_set)
    )


def valid_values(weights: Weights) -> Tuple[E, ...]:
    """The valid-set of a row: every value that can actually be drawn."""
    return tuple(value for value, _ in candidates(weights))


# ---------------------------------------------------------------------------
# Evolutionary state machine
# ---------------------------------------------------------------------------

MASSIVE_TYPES: FrozenSet[StarType] = frozenset({StarType.O, StarType.B})

TERMINAL_STAGES: FrozenSet[StarStage] = frozenset({
    StarStage.WHITE_DWARF,
    StarStage.NEUTRON_STAR,
    StarStage.BLACK_HOLE,
})

# Successors for the light/mid path (A–M).
_LIGHT_PATH: Dict[StarStage, Tuple[StarStage, ...]] = {
    StarStage.PROTOSTAR:     (StarStage.MAIN_SEQUENCE,),
    StarStage.MAIN_SEQUENCE: (StarStage.SUBGIANT,),
    StarStage.SUBGIANT:      (StarStage.GIANT,),
    StarStage.GIANT:         (StarStage.WHITE_DWARF,),
}

# Successors for the massive path (O, B).  SUPERNOVA branches; the branch
# weights live in TaxonomyTables.remnants.
_MASSIVE_PATH: Dict[StarStage, Tuple[StarStage, ...]] = {
    StarStage.PROTOSTAR:     (StarStage.MAIN_SEQUENCE,),
    StarStage.MAIN_SEQUENCE: (StarStage.GIANT,),
    StarStage.GIANT:         (StarStage.SUPERNOVA,),
    StarStage.SUPERNOVA:     (StarStage.NEUTRON_STAR, StarStage.BLACK_HOLE),
}

# Age, as a fraction of the type's main-sequence lifetime, at which a star
# leaves each non-terminal stage.
_LIGHT_EXITS: Dict[StarStage, float] = {
    StarStage.PROTOSTAR:     0.01,
    StarStage.MAIN_SEQUENCE: 1.0,
    StarStage.SUBGIANT:      1.1,
    StarStage.GIANT:         1.2,
}

_MASSIVE_EXITS: Dict[StarStage, float] = {
    StarStage.PROTOSTAR:     0.01,
    StarStage.MAIN_SEQUENCE: 1.0,
    StarStage.GIANT:         1.1,
    StarStage.SUPERNOVA:     1.11,
}


def stage_transitions(star_type: StarType) -> Dict[StarStage, Tuple[StarStage, ...]]:
    """Successor stages for every non-terminal stage of *star_type*."""
    return dict(_MASSIVE_PATH if star_type in MASSIVE_TYPES else _LIGHT_PATH)


# Long-lived dwarfs still contract onto the main sequence within ~50 Myr.
PROTOSTAR_MAX_GYR = 0.05


def stage_exit_ages(star_type: StarType, lifetime: float) -> Dict[StarStage, float]:
    """Age in Gyr at which a *star_type* star with *lifetime* leaves each stage."""
    fractions = _MASSIVE_EXITS if star_type in MASSIVE_TYPES else _LIGHT_EXITS
    exits = {stage: fraction * lifetime for stage, fraction in fractions.items()}
    exits[StarStage.PROTOSTAR] = min(exits[StarStage.PROTOSTAR], PROTOSTAR_MAX_GYR)
    return exits


def reachable_stages(star_type: StarType) -> FrozenSet[StarStage]:
    """Every stage on a valid evolutionary path of *star_type*."""
    transitions = stage_transitions(star_type)
    seen = {StarStage.PROTOSTAR}
    frontier = [StarStage.PROTOSTAR]
    while frontier:
        stage = frontier.pop()
        for nxt in transitions.get(stage, ()):
            if nxt not in seen:
                seen.add(nxt)
                frontier.append(nxt)
    return frozenset(seen)


def is_valid_evolution(star_type: StarType, stage: StarStage) -> bool:
    return stage in reachable_stages(star_type)


def allowed_star_compositions(star_type: StarType) -> FrozenSet[StarComposition]:
    """POP_III (first-generation) stars are only ever massive O/B types."""
    if star_type in MASSIVE_TYPES:
        return frozenset(StarComposition)
    return frozenset({StarComposition.POP_I, StarComposition.POP_II})


# ---------------------------------------------------------------------------
# Taxonomy tables
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class TaxonomyTables:
    """Weighted parent → child classification tables.

    Keys of every mapping are the *parent* classification; values are the
    weighted candidate rows for the child field.
    """

    galaxy_types: Weights
    galaxy_brightness: Mapping[GalaxyType, Weights]
    black_hole_chance: Mapping[GalaxyType, float]

    star_types: Mapping[GalaxyType, Weights]
    star_compositions: Mapping[StarType, Weights]
    flare_chance: Mapping[StarType, float]
    lifetimes: Mapping[StarType, float]         # main-sequence lifetime, Gyr
    remnants: Mapping[StarType, Weights]        # branch out of SUPERNOVA

    planet_types: Mapping[StarType, Weights]
    planet_compositions: Mapping[PlanetType, Weights]
    planet_atmospheres: Mapping[PlanetType, Weights]
    atmosphere_compatibility: Mapping[PlanetComposition, FrozenSet[AtmosphereType]]
    ring_chance: Mapping[PlanetType, float]

    satellite_types: Mapping[PlanetType, Weights]
    satellite_compositions: Mapping[SatelliteType, Weights]

    # ---- valid-set lookups ----

    def valid_star_compositions(self, star_type: StarType) -> Tuple[StarComposition, ...]:
        row = candidates(
            self.star_compositions.get(star_type, ()),
            allowed_star_compositions(star_type),
        )
        return valid_values(row)

    def valid_planet_compositions(self, planet_type: PlanetType) -> Tuple[PlanetComposition, ...]:
        return valid_values(self.planet_compositions.get(planet_type, ()))

    def valid_planet_atmospheres(self, planet_type: PlanetType) -> Tuple[AtmosphereType, ...]:
        return valid_values(self.planet_atmospheres.get(planet_type, ()))

    def valid_satellite_compositions(
        self, satellite_type: SatelliteType
    ) -> Tuple[SatelliteComposition, ...]:
        return valid_values(self.satellite_compositions.get(satellite_type, ()))

    def compatible_atmospheres(
        self, composition: PlanetComposition
    ) -> FrozenSet[AtmosphereType]:
        return frozenset(self.atmosphere_compatibility.get(composition, ()))

    # ---- (de)serialisation ----

    def with_overrides(self, overrides: Mapping[str, object]) -> "TaxonomyTables":
        """Return a copy with the rows named in *overrides* replaced."""
        changes = {}
        for name, data in overrides.items():
            if name not in _FIELD_KINDS:
                raise TaxonomyError(f"Unknown taxonomy table '{name}'")
            kind, key_enum, value_enum = _FIELD_KINDS[name]
            if kind == "weights":
                changes[name] = _parse_weights(data, value_enum, name)
                continue
            if not isinstance(data, Mapping):
                raise TaxonomyError(f"Table '{name}' must be an object keyed by name")
            merged = dict(getattr(self, name))
            for key_name, row in data.items():
                key = _parse_enum(key_enum, key_name, name)
                if kind == "rows":
                    merged[key] = _parse_weights(row, value_enum, f"{name}.{key_name}")
                elif kind == "sets":
                    if isinstance(row, (str, bytes)) or not isinstance(row, Iterable):
                        raise TaxonomyError(f"'{name}.{key_name}' must be a list of names")
                    merged[key] = frozenset(
                        _parse_enum(value_enum, item, f"{name}.{key_name}") for item in row
                    )
                else:
                    merged[key] = _parse_number(row, f"{name}.{key_name}")
            changes[name] = merged
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict:
        """JSON-shaped dump, readable back by ``with_overrides``."""
        out: dict = {}
        for name, (kind, _, _) in _FIELD_KINDS.items():
            table = getattr(self, name)
            if kind == "weights":
                out[name] = {value.name: weight for value, weight in table}
            elif kind == "rows":
                out[name] = {
                    key.name: {value.name: weight for value, weight in row}
                    for key, row in table.items()
                }
            elif kind == "sets":
                out[name] = {
                    key.name: sorted(value.name for value in row)
                    for key, row in table.items()
                }
            else:
                out[name] = {key.name: value for key, value in table.items()}
        return out


_FIELD_KINDS: Dict[str, Tuple[str, Optional[type], Optional[type]]] = {
    "galaxy_types":             ("weights", None, GalaxyType),
    "galaxy_brightness":        ("rows", GalaxyType, GalaxyBrightness),
    "black_hole_chance":        ("numbers", GalaxyType, None),
    "star_types":               ("rows", GalaxyType, StarType),
    "star_compositions":        ("rows", StarType, StarComposition),
    "flare_chance":             ("numbers", StarType, None),
    "lifetimes":                ("numbers", StarType, None),
    "remnants":                 ("rows", StarType, StarStage),
    "planet_types":             ("rows", StarType, PlanetType),
    "planet_compositions":      ("rows", PlanetType, PlanetComposition),
    "planet_atmospheres":       ("rows", PlanetType, AtmosphereType),
    "atmosphere_compatibility": ("sets", PlanetComposition, AtmosphereType),
    "ring_chance":              ("numbers", PlanetType, None),
    "satellite_types":          ("rows", PlanetType, SatelliteType),
    "satellite_compositions":   ("rows", SatelliteType, SatelliteComposition),
}


def _parse_enum(enum_cls: type, name: object, where: str):
    if isinstance(name, enum_cls):
        return name
    try:
        return enum_cls[str(name)]
    except KeyError:
        raise TaxonomyError(
            f"'{name}' is not a valid {enum_cls.__name__} (in '{where}')"
        ) from None


def _parse_number(value: object, where: str) -> float:
    if isinstance(value, bool):
        raise TaxonomyError(f"'{where}' must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise TaxonomyError(f"'{where}' must be a number, got {value!r}") from None
    if not math.isfinite(number) or number < 0:
        raise TaxonomyError(f"'{where}' must be a finite non-negative number, got {value!r}")
    return number


def _parse_weights(data: object, value_enum: type, where: str) -> Weights:
    """``{"NAME": weight, ...}`` or ``[["NAME", weight], ...]`` → Weights."""
    if isinstance(data, Mapping):
        items = list(data.items())
    elif isinstance(data, (list, tuple)):
        items = [tuple(item) for item in data]
    else:
        raise TaxonomyError(f"'{where}' must be an object of name → weight")
    return tuple(
        (_parse_enum(value_enum, name, where), _parse_number(weight, f"{where}.{name}"))
        for name, weight in items
    )


# ---------------------------------------------------------------------------
# Default tables
# ---------------------------------------------------------------------------

def _row(enum_cls: type, **weights: float) -> Weights:
    return tuple((enum_cls[name], float(w)) for name, w in weights.items())


_G, _S, _P, _A = GalaxyType, StarType, PlanetType, AtmosphereType

DEFAULT_TAXONOMY = TaxonomyTables(
    galaxy_types=_row(GalaxyType, SPIRAL=6, ELLIPTICAL=3, IRREGULAR=1),
    galaxy_brightness={
        _G.SPIRAL:     _row(GalaxyBrightness, FAINT=1, MODERATE=4, BRIGHT=4, VERY_BRIGHT=1),
        _G.ELLIPTICAL: _row(GalaxyBrightness, FAINT=2, MODERATE=4, BRIGHT=3, VERY_BRIGHT=1),
        _G.IRREGULAR:  _row(GalaxyBrightness, FAINT=5, MODERATE=4, BRIGHT=1),
    },
    black_hole_chance={_G.SPIRAL: 0.9, _G.ELLIPTICAL: 0.97, _G.IRREGULAR: 0.3},

    # Ellipticals are old and gas-poor (few massive stars); irregulars are
    # actively star-forming.
    star_types={
        _G.SPIRAL:     _row(StarType, O=1, B=3, A=6, F=10, G=14, K=24, M=42),
        _G.ELLIPTICAL: _row(StarType, O=0.1, B=0.5, A=3, F=10, G=16, K=28, M=42),
        _G.IRREGULAR:  _row(StarType, O=3, B=8, A=8, F=10, G=12, K=20, M=39),
    },
    star_compositions={
        _S.O: _row(StarComposition, POP_I=6, POP_II=2, POP_III=2),
        _S.B: _row(StarComposition, POP_I=7, POP_II=2, POP_III=1),
        _S.A: _row(StarComposition, POP_I=9, POP_II=1),
        _S.F: _row(StarComposition, POP_I=7, POP_II=3),
        _S.G: _row(StarComposition, POP_I=8, POP_II=2),
        _S.K: _row(StarComposition, POP_I=6, POP_II=4),
        _S.M: _row(StarComposition, POP_I=6, POP_II=4),
    },
    flare_chance={
        _S.O: 0.01, _S.B: 0.02, _S.A: 0.03, _S.F: 0.05,
        _S.G: 0.1, _S.K: 0.2, _S.M: 0.4,
    },
    lifetimes={
        _S.O: 0.01, _S.B: 0.1, _S.A: 1.0, _S.F: 4.0,
        _S.G: 10.0, _S.K: 30.0, _S.M: 200.0,
    },
    remnants={
        _S.O: _row(StarStage, NEUTRON_STAR=3, BLACK_HOLE=7),
        _S.B: _row(StarStage, NEUTRON_STAR=9, BLACK_HOLE=1),
    },

    planet_types={
        _S.O: _row(PlanetType, ROCKY=2, GAS_GIANT=3, ICE_GIANT=2, DESERT=2, LAVA=4, DWARF=2),
        _S.B: _row(PlanetType, ROCKY=2, GAS_GIANT=3, ICE_GIANT=2, DESERT=2, LAVA=3, DWARF=2),
        _S.A: _row(PlanetType, ROCKY=3, GAS_GIANT=3, ICE_GIANT=2, OCEAN=1, DESERT=2, LAVA=2, DWARF=2),
        _S.F: _row(PlanetType, ROCKY=4, GAS_GIANT=3, ICE_GIANT=2, OCEAN=2, DESERT=2, LAVA=1, DWARF=2),
        _S.G: _row(PlanetType, ROCKY=4, GAS_GIANT=3, ICE_GIANT=2, OCEAN=2, DESERT=2, LAVA=1, DWARF=2),
        _S.K: _row(PlanetType, ROCKY=5, GAS_GIANT=2, ICE_GIANT=2, OCEAN=2, DESERT=2, LAVA=1, DWARF=2),
        _S.M: _row(PlanetType, ROCKY=6, GAS_GIANT=1, ICE_GIANT=2, OCEAN=2, DESERT=2, LAVA=2, DWARF=2),
    },
    planet_compositions={
        _P.ROCKY:     _row(PlanetComposition, ROCKY_SILICATE=6, ROCKY_IRON_RICH=3, CARBON_WORLD=1),
        _P.GAS_GIANT: _row(PlanetComposition, GAS_GIANT_H2_HE=1),
        _P.ICE_GIANT: _row(PlanetComposition, ICE_GIANT_H2_HE_CH4=1),
        _P.OCEAN:     _row(PlanetComposition, OCEAN_WORLD=1),
        _P.DESERT:    _row(PlanetComposition, DESERT_WORLD=1),
        _P.LAVA:      _row(PlanetComposition, LAVA_WORLD=1),
        _P.DWARF:     _row(PlanetComposition, DWARF_ICE_ROCK=1),
    },
    planet_atmospheres={
        _P.ROCKY:     _row(AtmosphereType, NONE=3, THIN=3, EARTHLIKE=2, CO2=3),
        _P.GAS_GIANT: _row(AtmosphereType, H2_HE=1),
        _P.ICE_GIANT: _row(AtmosphereType, H2_HE=8, METHANE=2),
        _P.OCEAN:     _row(AtmosphereType, EARTHLIKE=4, CO2=3, TOXIC=1),
        _P.DESERT:    _row(AtmosphereType, THIN=3, CO2=3, DENSE=2, TOXIC=2),
        _P.LAVA:      _row(AtmosphereType, TOXIC=3, DENSE=2),
        _P.DWARF:     _row(AtmosphereType, NONE=5, THIN=3, METHANE=1),
    },
    atmosphere_compatibility={
        PlanetComposition.ROCKY_SILICATE:      frozenset({_A.NONE, _A.THIN, _A.EARTHLIKE, _A.CO2}),
        PlanetComposition.ROCKY_IRON_RICH:     frozenset({_A.NONE, _A.THIN, _A.CO2}),
        PlanetComposition.CARBON_WORLD:        frozenset({_A.NONE, _A.THIN, _A.CO2, _A.METHANE, _A.TOXIC}),
        PlanetComposition.OCEAN_WORLD:         frozenset({_A.THIN, _A.EARTHLIKE, _A.CO2, _A.TOXIC}),
        PlanetComposition.GAS_GIANT_H2_HE:     frozenset({_A.H2_HE}),
        PlanetComposition.ICE_GIANT_H2_HE_CH4: frozenset({_A.H2_HE, _A.METHANE}),
        PlanetComposition.LAVA_WORLD:          frozenset({_A.THIN, _A.DENSE, _A.TOXIC, _A.CO2}),
        PlanetComposition.DESERT_WORLD:        frozenset({_A.THIN, _A.DENSE, _A.TOXIC, _A.CO2}),
        PlanetComposition.DWARF_ICE_ROCK:      frozenset({_A.NONE, _A.THIN, _A.METHANE}),
    },
    ring_chance={
        _P.ROCKY: 0.02, _P.GAS_GIANT: 0.6, _P.ICE_GIANT: 0.45, _P.OCEAN: 0.02,
        _P.DESERT: 0.02, _P.LAVA: 0.01, _P.DWARF: 0.05,
    },

    satellite_types={
        _P.ROCKY:     _row(SatelliteType, REGULAR=3, CAPTURED=2),
        _P.GAS_GIANT: _row(SatelliteType, REGULAR=4, IRREGULAR=5, CAPTURED=1),
        _P.ICE_GIANT: _row(SatelliteType, REGULAR=3, IRREGULAR=4, CAPTURED=2),
        _P.OCEAN:     _row(SatelliteType, REGULAR=3, CAPTURED=1),
        _P.DESERT:    _row(SatelliteType, REGULAR=2, CAPTURED=2),
        _P.LAVA:      _row(SatelliteType, REGULAR=1, CAPTURED=2),
        _P.DWARF:     _row(SatelliteType, REGULAR=3, CAPTURED=1),
    },
    satellite_compositions={
        SatelliteType.REGULAR:   _row(SatelliteComposition, ROCKY_SILICATE=4, MIXED_ICE_ROCK=4, ICE_RICH=2),
        SatelliteType.IRREGULAR: _row(SatelliteComposition, ICE_RICH=3, MIXED_ICE_ROCK=3, RUBBLE_PILE=4),
        SatelliteType.CAPTURED:  _row(SatelliteComposition, METALLIC_FRAGMENT=3, RUBBLE_PILE=4, ICE_RICH=2),
    },
)
