"""KML/KMZ reader — converts Placemarks into GeoJSON features.

KMZ is a ZIP archive containing KML. KML coordinates are always WGS84 in
``longitude,latitude[,altitude]`` format, so no CRS tag is attached.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any

from .archive import Archive, find_by_suffix
from .errors import MalformedXml, NoKmlFound
from .models import Feature, FeatureCollection, Geometry

logger = logging.getLogger(__name__)

GEOMETRY_TAGS = ("Point", "LineString", "LinearRing", "Polygon", "MultiGeometry", "Track", "MultiTrack")

MULTI_TYPES = {
    "Point": "MultiPoint",
    "LineString": "MultiLineString",
    "Polygon": "MultiPolygon",
}


def read_kml(data: bytes | str) -> FeatureCollection:
    """Parse a KML document and return one feature per Placemark with geometry."""
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise MalformedXml(f"KML is not well-formed XML: {exc}") from exc

    features: list[Feature] = []
    for elem in root.iter():
        if _local(elem.tag) != "Placemark":
            continue
        feature = _placemark(elem)
        if feature is not None:
            features.append(feature)

    logger.debug("KML yielded %d features", len(features))
    return FeatureCollection(features=features)


def read_kmz(data: bytes) -> FeatureCollection:
    """Extract the first .kml entry of a KMZ archive and parse it."""
    with Archive.open(data) as archive:
        names = archive.names()
        kml_name = find_by_suffix(names, ".kml")
        if kml_name is None:
            raise NoKmlFound("No .kml found inside KMZ", entries=names)
        kml_bytes = archive.extract(kml_name)
    return read_kml(kml_bytes)


def _local(tag: Any) -> str:
    """Strip the namespace from an element tag (any KML version, gx: too)."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _child(elem: ET.Element, name: str) -> ET.Element | None:
    for child in elem:
        if _local(child.tag) == name:
            return child
    return None


def _children(elem: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in elem if _local(child.tag) == name]


def _placemark(elem: ET.Element) -> Feature | None:
    geometry = None
    for child in elem:
        if _local(child.tag) in GEOMETRY_TAGS:
            geometry = _geometry(child)
            break
    if geometry is None:
        return None
    return Feature(geometry=geometry, properties=_properties(elem))


def _properties(elem: ET.Element) -> dict[str, Any]:
    props: dict[str, Any] = {}
    for key in ("name", "description"):
        child = _child(elem, key)
        if child is not None and child.text is not None:
            props[key] = child.text.strip()

    extended = _child(elem, "ExtendedData")
    if extended is None:
        return props

    for data in _children(extended, "Data"):
        value = _child(data, "value")
        if data.get("name") and value is not None:
            props[data.get("name")] = (value.text or "").strip()
    for schema_data in _children(extended, "SchemaData"):
        for simple in _children(schema_data, "SimpleData"):
            if simple.get("name"):
                props[simple.get("name")] = (simple.text or "").strip()
    return props


def _geometry(elem: ET.Element) -> Geometry | None:
    """Convert one KML geometry element; ``None`` when it has no coordinates."""
    tag = _local(elem.tag)

    if tag == "Point":
        coords = _coordinates(elem)
        return Geometry(type="Point", coordinates=coords[0]) if coords else None

    if tag in ("LineString", "LinearRing"):
        coords = _coordinates(elem)
        return Geometry(type="LineString", coordinates=coords) if coords else None

    if tag == "Polygon":
        rings = _polygon_rings(elem)
        return Geometry(type="Polygon", coordinates=rings) if rings else None

    if tag == "MultiGeometry":
        return _multi_geometry(elem)

    if tag == "Track":
        coords = _track_coordinates(elem)
        return Geometry(type="LineString", coordinates=coords) if coords else None

    if tag == "MultiTrack":
        tracks = [c for c in (_track_coordinates(t) for t in _children(elem, "Track")) if c]
        if not tracks:
            return None
        if len(tracks) == 1:
            return Geometry(type="LineString", coordinates=tracks[0])
        return Geometry(type="MultiLineString", coordinates=tracks)

    return None


def _polygon_rings(elem: ET.Element) -> list[list[tuple[float, ...]]]:
    rings = []
    outer = _child(elem, "outerBoundaryIs")
    if outer is not None:
        rings.extend(_boundary_rings(outer))
    if not rings:
        return []
    for inner in _children(elem, "innerBoundaryIs"):
        rings.extend(_boundary_rings(inner))
    return rings


def _boundary_rings(boundary: ET.Element) -> list[list[tuple[float, ...]]]:
    rings = []
    for ring in _children(boundary, "LinearRing"):
        coords = _coordinates(ring)
        if coords:
            rings.append(coords)
    return rings


def _multi_geometry(elem: ET.Element) -> Geometry | None:
    parts: list[Geometry] = []
    for child in elem:
        if _local(child.tag) not in GEOMETRY_TAGS:
            continue
        geometry = _geometry(child)
        if geometry is None:
            continue
        # nested MultiGeometry is flattened into its parent
        if geometry.geometries is not None:
            parts.extend(geometry.geometries)
        elif geometry.type in ("MultiPoint", "MultiLineString", "MultiPolygon"):
            single = geometry.type[len("Multi"):]
            parts.extend(Geometry(type=single, coordinates=c) for c in geometry.coordinates)
        else:
            parts.append(geometry)

    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    types = {part.type for part in parts}
    if len(types) == 1:
        (single,) = types
        return Geometry(type=MULTI_TYPES[single], coordinates=[part.coordinates for part in parts])
    return Geometry(type="GeometryCollection", geometries=parts)


def _coordinates(elem: ET.Element) -> list[tuple[float, ...]]:
    coords_elem = _child(elem, "coordinates")
    if coords_elem is None or not coords_elem.text:
        return []
    return _parse_coordinates_text(coords_elem.text)


def _track_coordinates(elem: ET.Element) -> list[tuple[float, ...]]:
    """Positions of a ``gx:Track``, one ``gx:coord`` of ``lon lat [alt]`` each."""
    coords: list[tuple[float, ...]] = []
    for coord in _children(elem, "coord"):
        parts = (coord.text or "").split()
        if len(parts) < 2:
            continue
        try:
            coords.append(tuple(float(p) for p in parts[:3]))
        except ValueError as exc:
            raise MalformedXml(f"Invalid gx:coord {coord.text!r}") from exc
    return coords


def _parse_coordinates_text(text: str) -> list[tuple[float, ...]]:
    """Parse a KML ``<coordinates>`` text block.

    Format: ``lon,lat[,alt] lon,lat[,alt] ...`` (whitespace-separated tuples).
    """
    coords: list[tuple[float, ...]] = []
    for token in text.strip().split():
        parts = [p for p in token.split(",") if p]
        if len(parts) < 2:
            continue
        try:
            coords.append(tuple(float(p) for p in parts[:3]))
        except ValueError as exc:
            raise MalformedXml(f"Invalid KML coordinate {token!r}") from exc
    return coords
