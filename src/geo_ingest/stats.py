"""Normalization of decoder output and geometry statistics."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping, Sequence
from typing import Any, Union

from pyproj import Geod
from shapely.errors import GEOSException
from shapely.geometry import Polygon, shape
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from . import config
from .models import GEOMETRY_TYPES, Feature, FeatureCollection, Geometry, GeometryStats

logger = logging.getLogger(__name__)

# Decoders return one of these, nested arbitrarily: a layer list, or a mapping
# of layer name to result.
RawDecodeResult = Union[
    FeatureCollection,
    Feature,
    Geometry,
    Sequence["RawDecodeResult"],
    Mapping[str, "RawDecodeResult"],
    None,
]

SQUARE_METRES_PER_HECTARE = 10_000
UNKNOWN_TYPE = "Unknown"


def normalize(raw: RawDecodeResult) -> FeatureCollection:
    """Flatten any decoder output into one FeatureCollection.

    Feature order follows the traversal order of ``raw``. The first CRS met
    is carried onto the result.
    """
    collection = FeatureCollection()
    _flatten(raw, collection)
    return collection


def _flatten(raw: Any, out: FeatureCollection) -> None:
    if raw is None:
        return

    if isinstance(raw, Mapping):
        raw = _from_mapping(raw)

    if isinstance(raw, FeatureCollection):
        out.features.extend(raw.features)
        if out.crs is None and raw.crs is not None:
            out.crs = raw.crs
            out.projected = raw.projected
    elif isinstance(raw, Feature):
        out.features.append(raw)
    elif isinstance(raw, Geometry):
        out.features.append(Feature(geometry=raw))
    elif isinstance(raw, Mapping):
        for value in raw.values():
            _flatten(value, out)
    elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        for item in raw:
            _flatten(item, out)
    else:
        raise TypeError(f"Cannot normalize decoder output of type {type(raw).__name__}")


def _from_mapping(raw: Mapping) -> Any:
    """Validate GeoJSON-shaped mappings; anything else is a layer mapping."""
    kind = raw.get("type")
    if kind == "FeatureCollection":
        return FeatureCollection.model_validate(raw)
    if kind == "Feature" and "geometry" in raw:
        return Feature.model_validate(raw)
    if kind in GEOMETRY_TYPES:
        return Geometry.model_validate(raw)
    return raw


def compute_stats(collection: FeatureCollection) -> GeometryStats:
    histogram: Counter[str] = Counter()
    area_m2 = 0.0
    bounds: list[tuple[float, float, float, float]] = []
    geod = Geod(ellps=config.AREA_ELLIPSOID)

    for index, feature in enumerate(collection.features):
        if feature.geometry is None:
            histogram[UNKNOWN_TYPE] += 1
            continue
        histogram[feature.geometry.type] += 1

        extent = geometry_bounds(feature.geometry)
        if extent is not None:
            bounds.append(extent)

        try:
            geom = shape(feature.geometry.to_geojson())
            area_m2 += feature_area(geom, geod, planar=bool(collection.projected))
        except (ValueError, GEOSException) as exc:
            logger.debug("No area for feature %d: %s", index, exc)

    return GeometryStats(
        feature_count=len(collection.features),
        geom_types=dict(histogram),
        area_ha=round(area_m2 / SQUARE_METRES_PER_HECTARE, 2),
        bbox=_union_bounds(bounds),
        crs=collection.crs,
    )


def feature_area(geom: BaseGeometry, geod: Geod, planar: bool = False) -> float:
    """Area of a polygonal geometry in square metres.

    Lon/lat geometries use the geodesic area on ``geod``'s ellipsoid; projected
    ones use planar area in their native units. Raises ``ValueError`` for
    geometries without area.
    """
    polygons = _polygons(geom)
    if not polygons:
        raise ValueError(f"{geom.geom_type} has no area")
    if planar:
        return sum(p.area for p in polygons)
    total = 0.0
    for polygon in polygons:
        area, _perimeter = geod.geometry_area_perimeter(orient(polygon, sign=1.0))
        total += abs(area)
    return total


def _polygons(geom: BaseGeometry) -> list[Polygon]:
    if geom.geom_type == "Polygon":
        return [geom]
    if geom.geom_type in ("MultiPolygon", "GeometryCollection"):
        return [p for part in geom.geoms for p in _polygons(part)]
    return []


def geometry_bounds(geometry: Geometry) -> tuple[float, float, float, float] | None:
    """Bounding box of a geometry's coordinates, ``None`` when it has none."""
    xs: list[float] = []
    ys: list[float] = []
    for x, y in _positions(geometry):
        xs.append(x)
        ys.append(y)
    if not xs:
        return None
    return min(xs), min(ys), max(xs), max(ys)


def _positions(geometry: Geometry):
    if geometry.geometries is not None:
        for part in geometry.geometries:
            yield from _positions(part)
    else:
        yield from _walk_coordinates(geometry.coordinates)


def _walk_coordinates(coords: Any):
    if not coords:
        return
    if isinstance(coords[0], (int, float)):
        yield float(coords[0]), float(coords[1])
        return
    for item in coords:
        yield from _walk_coordinates(item)


def _union_bounds(bounds: list[tuple[float, float, float, float]]) -> tuple[float, float, float, float] | None:
    if not bounds:
        return None
    return (
        min(b[0] for b in bounds),
        min(b[1] for b in bounds),
        max(b[2] for b in bounds),
        max(b[3] for b in bounds),
    )
