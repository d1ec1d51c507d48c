"""
galaxy_tables.py
================
Flat pandas views of a generated galaxy, plus acceptance checks.

``galaxy_frames`` turns the entity graph into one DataFrame per level, with
parent-id columns linking the levels, so downstream tools can filter, join
and export without walking the graph.  Enum fields are stored by name.

``check_galaxy`` re-verifies the generator's invariants on a finished
galaxy and returns one row per check::

    check                  passed  detail
    system_count           True    3 systems, configured [3, 3]
    age_ordering           True    0 violations
    ...
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping

import numpy as np
import pandas as pd
from scipy.spatial import cKDTree

from bodies import Galaxy, Star
from genconfig import BodyRanges, GenerationConfig
from taxonomy import (
    AtmosphereType,
    PlanetType,
    allowed_star_compositions,
    is_valid_evolution,
)

log = logging.getLogger(__name__)

SYSTEM_COLUMNS = ["id", "galaxy_id", "name", "x", "y", "age", "seed", "star_id", "n_planets"]
STAR_COLUMNS = [
    "id", "system_id", "name", "type", "stage", "composition", "age", "mass",
    "radius", "luminosity", "temperature", "flare_active", "color", "brightness",
]
PLANET_COLUMNS = [
    "id", "system_id", "name", "type", "composition", "atmosphere", "age", "mass",
    "radius", "color", "distance_from_star", "x", "y", "is_habitable", "has_rings",
    "n_satellites",
]
SATELLITE_COLUMNS = [
    "id", "planet_id", "name", "type", "composition", "age", "mass", "radius",
    "color", "distance_from_planet", "x", "y",
]


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------

def galaxy_frames(galaxy: Galaxy) -> Dict[str, pd.DataFrame]:
    """Return ``{"systems", "stars", "planets", "satellites"}`` DataFrames."""
    systems: List[dict] = []
    stars: List[dict] = []
    planets: List[dict] = []
    satellites: List[dict] = []

    for system in galaxy.solar_systems:
        star = system.star
        systems.append({
            "id": system.id, "galaxy_id": galaxy.id, "name": system.name,
            "x": system.coords[0], "y": system.coords[1], "age": system.age,
            "seed": system.seed, "star_id": star.id, "n_planets": len(system.planets),
        })
        stars.append({
            "id": star.id, "system_id": system.id, "name": star.name,
            "type": star.type.name, "stage": star.stage.name,
            "composition": star.composition.name, "age": star.age,
            "mass": star.mass, "radius": star.radius, "luminosity": star.luminosity,
            "temperature": star.temperature, "flare_active": star.flare_active,
            "color": star.color, "brightness": star.brightness,
        })
        for planet in system.planets:
            planets.append({
                "id": planet.id, "system_id": system.id, "name": planet.name,
                "type": planet.type.name, "composition": planet.composition.name,
                "atmosphere": planet.atmosphere.name, "age": planet.age,
                "mass": planet.mass, "radius": planet.radius, "color": planet.color,
                "distance_from_star": planet.distance_from_star,
                "x": planet.coords[0], "y": planet.coords[1],
                "is_habitable": planet.is_habitable, "has_rings": planet.has_rings,
                "n_satellites": len(planet.satellites),
            })
            for satellite in planet.satellites:
                satellites.append({
                    "id": satellite.id, "planet_id": planet.id, "name": satellite.name,
                    "type": satellite.type.name, "composition": satellite.composition.name,
                    "age": satellite.age, "mass": satellite.mass, "radius": satellite.radius,
                    "color": satellite.color,
                    "distance_from_planet": satellite.distance_from_planet,
                    "x": satellite.coords[0], "y": satellite.coords[1],
                })

    return {
        "systems": pd.DataFrame(systems, columns=SYSTEM_COLUMNS),
        "stars": pd.DataFrame(stars, columns=STAR_COLUMNS),
        "planets": pd.DataFrame(planets, columns=PLANET_COLUMNS),
        "satellites": pd.DataFrame(satellites, columns=SATELLITE_COLUMNS),
    }


# ---------------------------------------------------------------------------
# Acceptance checks
# ---------------------------------------------------------------------------

def _out_of_range(frame: pd.DataFrame, ranges: Mapping, column: str, field: str) -> int:
    """Rows whose *column* falls outside ``ranges[type].<field>``."""
    if frame.empty:
        return 0
    lo = frame["type"].map({k.name: getattr(v, field).min for k, v in ranges.items()})
    hi = frame["type"].map({k.name: getattr(v, field).max for k, v in ranges.items()})
    return int((~frame[column].between(lo, hi)).sum())


def _range_violations(frame: pd.DataFrame, ranges: Mapping[object, BodyRanges],
                      distance_column: str) -> int:
    return (
        _out_of_range(frame, ranges, "mass", "mass")
        + _out_of_range(frame, ranges, "radius", "radius")
        + _out_of_range(frame, ranges, distance_column, "distance")
    )


def _star_range_violations(star: Star, cfg: GenerationConfig) -> int:
    ranges = cfg.star_ranges_for(star.type, star.stage)
    return sum(
        not bounds.contains(value)
        for bounds, value in (
            (ranges.mass, star.mass),
            (ranges.radius, star.radius),
            (ranges.luminosity, star.luminosity),
            (ranges.temperature, star.temperature),
        )
    )


def check_galaxy(galaxy: Galaxy, cfg: GenerationConfig) -> pd.DataFrame:
    """Run acceptance checks on *galaxy*; returns columns check, passed, detail."""
    tables = cfg.taxonomy
    frames = galaxy_frames(galaxy)
    systems, stars = frames["systems"], frames["stars"]
    planets, satellites = frames["planets"], frames["satellites"]
    rows: List[dict] = []

    def record(name: str, passed: bool, detail: str) -> None:
        passed = bool(passed)
        rows.append({"check": name, "passed": passed, "detail": detail})
        if passed:
            log.info("  %-22s ✓  %s", name, detail)
        else:
            log.warning("  %-22s ✗ FAIL  %s", name, detail)

    log.info("Acceptance checks for galaxy %s '%s'", galaxy.id, galaxy.name)

    # Counts
    n = len(systems)
    record("system_count", cfg.system_count.contains(n),
           f"{n} systems, configured {cfg.system_count}")

    # Ages nest from galaxy down to satellite; satellites never outweigh planets
    bad_ages = int((systems["age"] > galaxy.age).sum())
    bad_ages += int((stars["age"].to_numpy() != systems["age"].to_numpy()).sum())
    star_age = stars.set_index("system_id")["age"]
    bad_ages += int((planets["age"] > planets["system_id"].map(star_age)).sum())
    planet_age = planets.set_index("id")["age"]
    bad_ages += int((satellites["age"] > satellites["planet_id"].map(planet_age)).sum())
    record("age_ordering", bad_ages == 0, f"{bad_ages} violations")

    planet_mass = planets.set_index("id")["mass"]
    heavy = int((satellites["mass"] > satellites["planet_id"].map(planet_mass)).sum())
    record("satellite_mass", heavy == 0, f"{heavy} satellites heavier than their planet")

    planet_radius = planets.set_index("id")["radius"]
    big = int((satellites["radius"] > satellites["planet_id"].map(planet_radius)).sum())
    record("satellite_radius", big == 0, f"{big} satellites larger than their planet")

    # Classification invariants
    bad_stars = bad_paths = 0
    bad_planets = bad_atmospheres = bad_satellites = bad_habitable = 0
    for system in galaxy.solar_systems:
        star = system.star
        if star.composition not in allowed_star_compositions(star.type):
            bad_stars += 1
        if not is_valid_evolution(star.type, star.stage):
            bad_paths += 1
        for planet in system.planets:
            if planet.composition not in tables.valid_planet_compositions(planet.type):
                bad_planets += 1
            if (planet.atmosphere not in tables.valid_planet_atmospheres(planet.type)
                    or planet.atmosphere not in tables.compatible_atmospheres(planet.composition)):
                bad_atmospheres += 1
            if planet.is_habitable and not (
                planet.type is PlanetType.ROCKY
                and planet.atmosphere is AtmosphereType.EARTHLIKE
            ):
                bad_habitable += 1
            for satellite in planet.satellites:
                if satellite.composition not in tables.valid_satellite_compositions(satellite.type):
                    bad_satellites += 1

    record("star_composition", bad_stars == 0, f"{bad_stars} POP_III stars outside O/B")
    record("evolution_path", bad_paths == 0, f"{bad_paths} stars off their evolutionary path")
    record("planet_composition", bad_planets == 0, f"{bad_planets} invalid compositions")
    record("planet_atmosphere", bad_atmospheres == 0, f"{bad_atmospheres} invalid atmospheres")
    record("satellite_composition", bad_satellites == 0, f"{bad_satellites} invalid compositions")
    record("habitability", bad_habitable == 0,
           f"{int(planets['is_habitable'].sum())} habitable, {bad_habitable} violations")

    # Sampled scalars
    bad = sum(_star_range_violations(system.star, cfg) for system in galaxy.solar_systems)
    record("star_ranges", bad == 0, f"{bad} values outside stage-scoped ranges")
    bad_coords = int((~systems["x"].between(cfg.galaxy_coords.min, cfg.galaxy_coords.max)).sum()
                     + (~systems["y"].between(cfg.galaxy_coords.min, cfg.galaxy_coords.max)).sum())
    record("system_coords", bad_coords == 0, f"{bad_coords} coordinates outside {cfg.galaxy_coords}")
    bad = _range_violations(planets, cfg.planet_ranges, "distance_from_star")
    record("planet_ranges", bad == 0, f"{bad} values outside configured ranges")
    bad = _range_violations(satellites, cfg.satellite_ranges, "distance_from_planet")
    record("satellite_ranges", bad == 0, f"{bad} values outside configured ranges")

    # Coincident systems are legal; reported for inspection only
    if n > 1:
        xy = systems[["x", "y"]].to_numpy(dtype=np.float64)
        pairs = cKDTree(xy).query_pairs(0.0, output_type="ndarray")
        n_pairs = len(pairs)
    else:
        n_pairs = 0
    record("coincident_systems", True, f"{n_pairs} system pairs share coordinates")

    return pd.DataFrame(rows, columns=["check", "passed", "detail"])
