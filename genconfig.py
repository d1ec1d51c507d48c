"""
genconfig.py
============
Generation configuration for the universe generator.

Units
-----
  • ages                 – Gyr
  • star mass / radius   – solar masses / solar radii
  • star luminosity      – solar luminosities
  • star temperature     – Kelvin (integer)
  • planet mass / radius – Earth masses / Earth radii
  • satellite mass / radius – Earth masses / Earth radii
  • planet distance      – AU from the star
  • satellite distance   – thousand km from the planet
  • system coordinates   – integer grid cells of the galactic plane

Usage
-----
    from genconfig import GenerationConfig, Range, load_config
    cfg = GenerationConfig(system_count=Range(3, 3))
    cfg = load_config("universe.json")
"""

from __future__ import annotations

import dataclasses
import json
import math
import os
from typing import Any, Dict, Mapping, Optional

from generrors import InvalidRange, TaxonomyError
from taxonomy import (
    DEFAULT_TAXONOMY,
    PlanetType,
    SatelliteType,
    StarStage,
    StarType,
    TERMINAL_STAGES,
    TaxonomyTables,
)


# ---------------------------------------------------------------------------
# Closed numeric interval
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class Range:
    """Closed interval ``[min, max]`` bounding a sampled attribute.

    JSON form is ``{"min": 100, "max": 500}``; unknown keys are ignored.
    """

    min: float
    max: float

    def validate(self) -> "Range":
        if not (math.isfinite(self.min) and math.isfinite(self.max)):
            raise InvalidRange(f"Range {self} has a non-finite bound")
        if self.min > self.max:
            raise InvalidRange(f"Range {self} has min > max")
        return self

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def scaled(self, factor: float) -> "Range":
        return Range(self.min * factor, self.max * factor)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Range":
        try:
            return cls(float(data["min"]), float(data["max"]))
        except (KeyError, TypeError, ValueError):
            raise TaxonomyError(
                f"Range must be an object with numeric 'min' and 'max', got {data!r}"
            ) from None

    def to_dict(self) -> Dict[str, float]:
        return {"min": self.min, "max": self.max}

    def __str__(self) -> str:
        return f"[{self.min}, {self.max}]"


@dataclasses.dataclass(frozen=True)
class StarRanges:
    mass: Range
    radius: Range
    temperature: Range
    luminosity: Range


@dataclasses.dataclass(frozen=True)
class RemnantRanges:
    """Radius, temperature and luminosity of a compact remnant."""

    radius: Range
    temperature: Range
    luminosity: Range


@dataclasses.dataclass(frozen=True)
class StageScale:
    """Multipliers applied to the spectral-type ranges of an evolved star."""

    radius: float
    luminosity: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StageScale":
        try:
            scale = cls(float(data["radius"]), float(data["luminosity"]))
        except (KeyError, TypeError, ValueError):
            raise TaxonomyError(
                f"Stage scale must have numeric 'radius' and 'luminosity', got {data!r}"
            ) from None
        if not (scale.radius > 0 and scale.luminosity > 0
                and math.isfinite(scale.radius) and math.isfinite(scale.luminosity)):
            raise TaxonomyError(f"Stage scale factors must be positive and finite, got {data!r}")
        return scale

    def to_dict(self) -> Dict[str, float]:
        return {"radius": self.radius, "luminosity": self.luminosity}


@dataclasses.dataclass(frozen=True)
class BodyRanges:
    """Mass, radius and orbital distance for a planet or satellite class."""

    mass: Range
    radius: Range
    distance: Range


# ---------------------------------------------------------------------------
# Default range tables (scoped by resolved classification)
# ---------------------------------------------------------------------------

def _star(mass, radius, temperature, luminosity) -> StarRanges:
    return StarRanges(Range(*mass), Range(*radius), Range(*temperature), Range(*luminosity))


def _body(mass, radius, distance) -> BodyRanges:
    return BodyRanges(Range(*mass), Range(*radius), Range(*distance))


DEFAULT_STAR_RANGES: Dict[StarType, StarRanges] = {
    StarType.O: _star((16.0, 90.0), (6.6, 15.0), (30_000, 50_000), (30_000.0, 1_000_000.0)),
    StarType.B: _star((2.1, 16.0), (1.8, 6.6), (10_000, 30_000), (25.0, 30_000.0)),
    StarType.A: _star((1.4, 2.1), (1.4, 1.8), (7_500, 10_000), (5.0, 25.0)),
    StarType.F: _star((1.04, 1.4), (1.15, 1.4), (6_000, 7_500), (1.5, 5.0)),
    StarType.G: _star((0.8, 1.04), (0.96, 1.15), (5_200, 6_000), (0.6, 1.5)),
    StarType.K: _star((0.45, 0.8), (0.7, 0.96), (3_700, 5_200), (0.08, 0.6)),
    StarType.M: _star((0.08, 0.45), (0.1, 0.7), (2_400, 3_700), (0.0001, 0.08)),
}

# Compact remnants replace the spectral-type radius, temperature and
# luminosity; only the mass range still comes from the progenitor's type.
DEFAULT_REMNANT_RANGES: Dict[StarStage, RemnantRanges] = {
    StarStage.WHITE_DWARF: RemnantRanges(
        Range(0.008, 0.02), Range(4_000, 40_000), Range(1e-4, 0.1)),
    StarStage.NEUTRON_STAR: RemnantRanges(
        Range(1.4e-5, 1.8e-5), Range(100_000, 1_000_000), Range(1e-6, 1e-2)),
    StarStage.BLACK_HOLE: RemnantRanges(
        Range(4.0e-5, 1.0e-3), Range(0, 0), Range(0.0, 0.0)),
}

# Evolved stars swell and brighten relative to their main-sequence ranges.
DEFAULT_STAGE_SCALE: Dict[StarStage, StageScale] = {
    StarStage.SUBGIANT:  StageScale(radius=2.0, luminosity=3.0),
    StarStage.GIANT:     StageScale(radius=10.0, luminosity=50.0),
    StarStage.SUPERNOVA: StageScale(radius=50.0, luminosity=10_000.0),
}

DEFAULT_PLANET_RANGES: Dict[PlanetType, BodyRanges] = {
    PlanetType.ROCKY:     _body((0.05, 5.0), (0.4, 1.6), (0.3, 3.0)),
    PlanetType.GAS_GIANT: _body((30.0, 4000.0), (6.0, 15.0), (1.0, 30.0)),
    PlanetType.ICE_GIANT: _body((8.0, 30.0), (3.0, 6.0), (5.0, 50.0)),
    PlanetType.OCEAN:     _body((0.5, 8.0), (0.8, 2.5), (0.5, 3.0)),
    PlanetType.DESERT:    _body((0.1, 5.0), (0.5, 1.8), (0.3, 4.0)),
    PlanetType.LAVA:      _body((0.1, 8.0), (0.5, 2.0), (0.01, 0.3)),
    PlanetType.DWARF:     _body((0.0001, 0.01), (0.05, 0.2), (20.0, 100.0)),
}

DEFAULT_SATELLITE_RANGES: Dict[SatelliteType, BodyRanges] = {
    SatelliteType.REGULAR:   _body((1e-5, 0.03), (0.02, 0.42), (100.0, 2_000.0)),
    SatelliteType.IRREGULAR: _body((1e-9, 1e-5), (0.0005, 0.02), (1_000.0, 30_000.0)),
    SatelliteType.CAPTURED:  _body((1e-9, 4e-3), (0.0005, 0.25), (300.0, 20_000.0)),
}

DEFAULT_SATELLITE_COUNT: Dict[PlanetType, Range] = {
    PlanetType.ROCKY:     Range(0, 2),
    PlanetType.GAS_GIANT: Range(2, 12),
    PlanetType.ICE_GIANT: Range(1, 8),
    PlanetType.OCEAN:     Range(0, 2),
    PlanetType.DESERT:    Range(0, 2),
    PlanetType.LAVA:      Range(0, 1),
    PlanetType.DWARF:     Range(0, 1),
}


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class GenerationConfig:
    """All tunable parameters for universe generation.

    Ages nest by construction: a system's age range is capped at its
    galaxy's age, and planets and satellites take a *fraction* of their
    parent body's age.
    """

    # ---- identity ----
    galaxy_id: int = 1
    galaxy_name: Optional[str] = None

    # ---- counts ----
    system_count: Range = Range(3, 8)
    planet_count: Range = Range(0, 8)
    satellite_count: Dict[PlanetType, Range] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_SATELLITE_COUNT)
    )

    # ---- galaxy ----
    galaxy_age: Range = Range(1.0, 13.6)
    galaxy_coords: Range = Range(-50_000, 50_000)

    # ---- ages ----
    system_age: Range = Range(0.001, 13.0)
    planet_age_fraction: Range = Range(0.9, 1.0)
    satellite_age_fraction: Range = Range(0.8, 1.0)

    # ---- per-classification scalars ----
    star_ranges: Dict[StarType, StarRanges] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_STAR_RANGES)
    )
    remnant_ranges: Dict[StarStage, RemnantRanges] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_REMNANT_RANGES)
    )
    stage_scale: Dict[StarStage, StageScale] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_STAGE_SCALE)
    )
    planet_ranges: Dict[PlanetType, BodyRanges] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_PLANET_RANGES)
    )
    satellite_ranges: Dict[SatelliteType, BodyRanges] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_SATELLITE_RANGES)
    )

    # ---- planet coordinates: integer grid units per AU ----
    system_grid: int = 100

    # ---- classification tables ----
    taxonomy: TaxonomyTables = DEFAULT_TAXONOMY

    # ---- execution ----
    workers: int = 1   # threads building sibling solar systems

    def star_ranges_for(self, star_type: StarType, stage: StarStage) -> StarRanges:
        """Ranges for a *star_type* star that has reached *stage*.

        Remnants take radius, temperature and luminosity from
        ``remnant_ranges``; stages listed in ``stage_scale`` multiply the
        spectral-type radius and luminosity; other stages use the
        spectral-type row unchanged.
        """
        try:
            base = self.star_ranges[star_type]
        except KeyError:
            raise InvalidRange(f"No star ranges configured for {star_type.name}") from None
        if stage in TERMINAL_STAGES:
            try:
                remnant = self.remnant_ranges[stage]
            except KeyError:
                raise InvalidRange(f"No remnant ranges configured for {stage.name}") from None
            return StarRanges(base.mass, remnant.radius, remnant.temperature, remnant.luminosity)
        scale = self.stage_scale.get(stage)
        if scale is None:
            return base
        return dataclasses.replace(
            base,
            radius=base.radius.scaled(scale.radius),
            luminosity=base.luminosity.scaled(scale.luminosity),
        )

    # ------------------------------------------------------------------
    # JSON round trip
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GenerationConfig":
        """Build a config from JSON-shaped data; omitted fields keep defaults."""
        cfg = cls()
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise TaxonomyError(f"Unknown configuration keys: {sorted(unknown)}")

        changes: Dict[str, Any] = {}
        for name in ("galaxy_id", "system_grid", "workers"):
            if name in data:
                changes[name] = int(data[name])
        if "galaxy_name" in data:
            changes["galaxy_name"] = data["galaxy_name"]
        for name in ("system_count", "planet_count", "galaxy_age", "galaxy_coords",
                     "system_age", "planet_age_fraction", "satellite_age_fraction"):
            if name in data:
                changes[name] = Range.from_dict(data[name])

        if "satellite_count" in data:
            changes["satellite_count"] = _merge(
                cfg.satellite_count, data["satellite_count"], PlanetType, Range.from_dict
            )
        if "remnant_ranges" in data:
            changes["remnant_ranges"] = _merge(
                cfg.remnant_ranges, data["remnant_ranges"], StarStage,
                lambda row: _ranges_from_dict(RemnantRanges, row),
            )
        if "stage_scale" in data:
            changes["stage_scale"] = _merge(
                cfg.stage_scale, data["stage_scale"], StarStage, StageScale.from_dict
            )
        if "star_ranges" in data:
            changes["star_ranges"] = _merge(
                cfg.star_ranges, data["star_ranges"], StarType,
                lambda row: _ranges_from_dict(StarRanges, row),
            )
        if "planet_ranges" in data:
            changes["planet_ranges"] = _merge(
                cfg.planet_ranges, data["planet_ranges"], PlanetType,
                lambda row: _ranges_from_dict(BodyRanges, row),
            )
        if "satellite_ranges" in data:
            changes["satellite_ranges"] = _merge(
                cfg.satellite_ranges, data["satellite_ranges"], SatelliteType,
                lambda row: _ranges_from_dict(BodyRanges, row),
            )
        if "taxonomy" in data:
            changes["taxonomy"] = cfg.taxonomy.with_overrides(data["taxonomy"])

        return dataclasses.replace(cfg, **changes)

    def to_dict(self) -> Dict[str, Any]:
        def ranges(row) -> Dict[str, Any]:
            return {f.name: getattr(row, f.name).to_dict() for f in dataclasses.fields(row)}

        return {
            "galaxy_id": self.galaxy_id,
            "galaxy_name": self.galaxy_name,
            "system_count": self.system_count.to_dict(),
            "planet_count": self.planet_count.to_dict(),
            "satellite_count": {k.name: v.to_dict() for k, v in self.satellite_count.items()},
            "galaxy_age": self.galaxy_age.to_dict(),
            "galaxy_coords": self.galaxy_coords.to_dict(),
            "system_age": self.system_age.to_dict(),
            "planet_age_fraction": self.planet_age_fraction.to_dict(),
            "satellite_age_fraction": self.satellite_age_fraction.to_dict(),
            "star_ranges": {k.name: ranges(v) for k, v in self.star_ranges.items()},
            "remnant_ranges": {k.name: ranges(v) for k, v in self.remnant_ranges.items()},
            "stage_scale": {k.name: v.to_dict() for k, v in self.stage_scale.items()},
            "planet_ranges": {k.name: ranges(v) for k, v in self.planet_ranges.items()},
            "satellite_ranges": {k.name: ranges(v) for k, v in self.satellite_ranges.items()},
            "system_grid": self.system_grid,
            "taxonomy": self.taxonomy.to_dict(),
            "workers": self.workers,
        }


def _merge(base: Mapping, data: Mapping[str, Any], key_enum: type, parse) -> dict:
    if not isinstance(data, Mapping):
        raise TaxonomyError(f"Expected an object keyed by {key_enum.__name__} names")
    merged = dict(base)
    for name, row in data.items():
        try:
            key = key_enum[name]
        except KeyError:
            raise TaxonomyError(f"'{name}' is not a valid {key_enum.__name__}") from None
        merged[key] = parse(row)
    return merged


def _ranges_from_dict(cls: type, row: Mapping[str, Any]):
    names = [f.name for f in dataclasses.fields(cls)]
    missing = [n for n in names if n not in row]
    if missing:
        raise TaxonomyError(f"{cls.__name__} is missing {missing}")
    return cls(**{n: Range.from_dict(row[n]) for n in names})


def load_config(path: str) -> GenerationConfig:
    """Read a JSON configuration file written in ``GenerationConfig.to_dict`` form."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Configuration file '{path}' not found.")
    with open(path) as f:
        data = json.load(f)
    return GenerationConfig.from_dict(data)
