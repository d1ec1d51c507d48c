"""
bodies.py
=========
Entity graph produced by the universe generator.

Every star, planet and satellite shares one physical shape
(``PhysicalBody``); what differs between levels is the classification
payload and a handful of level-specific fields.  All entities are frozen
value snapshots: the generator builds each one exactly once.  Editing tools
derive modified copies with ``dataclasses.replace``.

Ownership is strictly top-down.  A satellite refers to its planet by id
only, so the graph contains no cycles.
"""

from __future__ import annotations

import dataclasses
from typing import Iterator, Optional, Tuple, Union

from taxonomy import (
    AtmosphereType,
    GalaxyBrightness,
    GalaxyType,
    PlanetComposition,
    PlanetType,
    SatelliteComposition,
    SatelliteType,
    StarComposition,
    StarStage,
    StarType,
)

Coords = Tuple[int, int]


# ---------------------------------------------------------------------------
# Classification payloads
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class GalaxyClass:
    type: GalaxyType
    brightness: GalaxyBrightness


@dataclasses.dataclass(frozen=True)
class StarClass:
    type: StarType
    stage: StarStage
    composition: StarComposition


@dataclasses.dataclass(frozen=True)
class PlanetClass:
    type: PlanetType
    composition: PlanetComposition
    atmosphere: AtmosphereType


@dataclasses.dataclass(frozen=True)
class SatelliteClass:
    type: SatelliteType
    composition: SatelliteComposition


Classification = Union[GalaxyClass, StarClass, PlanetClass, SatelliteClass]


# ---------------------------------------------------------------------------
# Bodies
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class PhysicalBody:
    """Fields every celestial body has, whatever its level."""

    id: str
    name: str
    coords: Coords
    age: float
    mass: float
    radius: float
    color: str


class _BodyFields:
    """Read-through accessors for entities wrapping a ``PhysicalBody``."""

    body: PhysicalBody

    @property
    def id(self) -> str:
        return self.body.id

    @property
    def name(self) -> str:
        return self.body.name

    @property
    def coords(self) -> Coords:
        return self.body.coords

    @property
    def age(self) -> float:
        return self.body.age

    @property
    def mass(self) -> float:
        return self.body.mass

    @property
    def radius(self) -> float:
        return self.body.radius

    @property
    def color(self) -> str:
        return self.body.color


@dataclasses.dataclass(frozen=True)
class Star(_BodyFields):
    body: PhysicalBody
    classification: StarClass
    luminosity: float
    temperature: int
    flare_active: bool
    brightness: str

    @property
    def type(self) -> StarType:
        return self.classification.type

    @property
    def stage(self) -> StarStage:
        return self.classification.stage

    @property
    def composition(self) -> StarComposition:
        return self.classification.composition


@dataclasses.dataclass(frozen=True)
class Satellite(_BodyFields):
    body: PhysicalBody
    classification: SatelliteClass
    planet_id: str
    distance_from_planet: float

    @property
    def type(self) -> SatelliteType:
        return self.classification.type

    @property
    def composition(self) -> SatelliteComposition:
        return self.classification.composition


@dataclasses.dataclass(frozen=True)
class Planet(_BodyFields):
    body: PhysicalBody
    classification: PlanetClass
    distance_from_star: float
    is_habitable: bool
    has_rings: bool
    satellites: Tuple[Satellite, ...] = ()

    @property
    def type(self) -> PlanetType:
        return self.classification.type

    @property
    def composition(self) -> PlanetComposition:
        return self.classification.composition

    @property
    def atmosphere(self) -> AtmosphereType:
        return self.classification.atmosphere


Body = Union[Star, Planet, Satellite]


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class SolarSystem:
    id: str
    name: str
    coords: Coords
    seed: int
    age: float
    star: Star
    planets: Tuple[Planet, ...] = ()

    def satellites(self) -> Iterator[Satellite]:
        for planet in self.planets:
            yield from planet.satellites


@dataclasses.dataclass(frozen=True)
class Galaxy:
    id: str
    name: str
    classification: GalaxyClass
    age: float
    black_hole_presence: bool
    seed: int
    solar_systems: Tuple[SolarSystem, ...] = ()

    @property
    def type(self) -> GalaxyType:
        return self.classification.type

    @property
    def brightness(self) -> GalaxyBrightness:
        return self.classification.brightness

    def iter_bodies(self) -> Iterator[Tuple[str, Body, str]]:
        """Yield ``(level, body, parent_id)`` for every body, in index order."""
        for system in self.solar_systems:
            yield "star", system.star, system.id
            for planet in system.planets:
                yield "planet", planet, system.id
                for satellite in planet.satellites:
                    yield "satellite", satellite, planet.id

    def find(self, entity_id: str) -> Optional[Union[SolarSystem, Body]]:
        for system in self.solar_systems:
            if system.id == entity_id:
                return system
        for _, body, _ in self.iter_bodies():
            if body.id == entity_id:
                return body
        return None
