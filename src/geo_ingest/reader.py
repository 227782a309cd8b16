"""Shapefile decoder: header validation, record walk and pyshp decoding."""

from __future__ import annotations

import datetime
import io
import logging
import struct
from typing import Any

import shapefile
from pydantic import BaseModel
from pyproj import CRS
from pyproj.exceptions import CRSError

from . import config
from .archive import Archive
from .errors import MalformedShapefile, MissingDbfComponent, NoShapefileFound
from .models import Feature, FeatureCollection, Geometry, ShapefileComponents

logger = logging.getLogger(__name__)

HEADER_SIZE = 100
RECORD_HEADER_SIZE = 8
INDEX_RECORD_SIZE = 8
FILE_CODE = 9994

SHAPE_TYPE_NAMES = {
    shapefile.NULL: "NULL",
    shapefile.POINT: "POINT",
    shapefile.POLYLINE: "POLYLINE",
    shapefile.POLYGON: "POLYGON",
    shapefile.MULTIPOINT: "MULTIPOINT",
    shapefile.POINTZ: "POINTZ",
    shapefile.POLYLINEZ: "POLYLINEZ",
    shapefile.POLYGONZ: "POLYGONZ",
    shapefile.MULTIPOINTZ: "MULTIPOINTZ",
    shapefile.POINTM: "POINTM",
    shapefile.POLYLINEM: "POLYLINEM",
    shapefile.POLYGONM: "POLYGONM",
    shapefile.MULTIPOINTM: "MULTIPOINTM",
    shapefile.MULTIPATCH: "MULTIPATCH",
}


class ShapefileHeader(BaseModel):
    """The fixed 100-byte main file header of a .shp buffer."""

    shape_type: int
    shape_type_name: str
    file_length: int
    bbox: tuple[float, float, float, float]


class RecordSpan(BaseModel):
    offset: int
    content_length: int


def read_header(shp: bytes) -> ShapefileHeader:
    """Parse and validate the main file header.

    Lengths in the header are stored as 16-bit words; ``file_length`` is
    returned in bytes.
    """
    if len(shp) < HEADER_SIZE:
        raise MalformedShapefile(f"Truncated .shp header ({len(shp)} of {HEADER_SIZE} bytes)")

    (file_code,) = struct.unpack(">i", shp[0:4])
    if file_code != FILE_CODE:
        raise MalformedShapefile(f"Not a shapefile (file code {file_code}, expected {FILE_CODE})")

    (length_words,) = struct.unpack(">i", shp[24:28])
    _version, shape_type = struct.unpack("<2i", shp[28:36])
    bbox = struct.unpack("<4d", shp[36:68])

    name = SHAPE_TYPE_NAMES.get(shape_type)
    if name is None:
        raise MalformedShapefile(f"Unrecognized shape type code {shape_type}")
    if shape_type == shapefile.MULTIPATCH:
        raise MalformedShapefile("Unsupported shape type MULTIPATCH")

    return ShapefileHeader(
        shape_type=shape_type,
        shape_type_name=name,
        file_length=length_words * 2,
        bbox=bbox,
    )


def walk_records(shp: bytes, header: ShapefileHeader) -> list[RecordSpan]:
    """Walk the record headers of ``shp`` sequentially and return their spans."""
    if header.file_length > len(shp):
        raise MalformedShapefile(
            f"Header declares {header.file_length} bytes but .shp holds {len(shp)}"
        )

    spans: list[RecordSpan] = []
    offset = HEADER_SIZE
    while offset < header.file_length:
        if offset + RECORD_HEADER_SIZE + 4 > header.file_length:
            raise MalformedShapefile(f"Truncated record header at byte {offset}")
        _number, content_words = struct.unpack(">2i", shp[offset : offset + RECORD_HEADER_SIZE])
        content_length = content_words * 2
        end = offset + RECORD_HEADER_SIZE + content_length
        if content_length < 4 or end > header.file_length:
            raise MalformedShapefile(
                f"Record {len(spans) + 1} at byte {offset} declares {content_length} bytes, "
                f"past the end of the content"
            )
        (record_type,) = struct.unpack("<i", shp[offset + 8 : offset + 12])
        if record_type not in (shapefile.NULL, header.shape_type):
            raise MalformedShapefile(
                f"Record {len(spans) + 1} has shape type {record_type}, "
                f"file declares {header.shape_type_name}"
            )
        spans.append(RecordSpan(offset=offset, content_length=content_length))
        offset = end
    return spans


def index_matches(shx: bytes, spans: list[RecordSpan]) -> bool:
    """Check a .shx index against the spans found by walking the .shp."""
    expected = HEADER_SIZE + INDEX_RECORD_SIZE * len(spans)
    if len(shx) < expected:
        logger.warning("Ignoring .shx: %d bytes, expected %d", len(shx), expected)
        return False
    for i, span in enumerate(spans):
        start = HEADER_SIZE + INDEX_RECORD_SIZE * i
        offset_words, length_words = struct.unpack(">2i", shx[start : start + INDEX_RECORD_SIZE])
        if offset_words * 2 != span.offset or length_words * 2 != span.content_length:
            logger.warning("Ignoring .shx: entry %d does not match record at byte %d", i, span.offset)
            return False
    return True


def detect_crs(prj_wkt: str | None) -> tuple[str | None, bool | None]:
    """Parse CRS from .prj WKT text.

    Returns (identifier, is_projected) or (None, None) when absent or unparsable.
    The identifier is ``EPSG:<code>`` when the CRS can be matched, else its name.
    """
    if prj_wkt is None:
        return None, None

    wkt = prj_wkt.lstrip("\ufeff").strip()
    if not wkt:
        return None, None

    try:
        crs = CRS.from_wkt(wkt)
    except CRSError as exc:
        logger.warning("Ignoring unparsable .prj: %s", exc)
        return None, None

    epsg = crs.to_epsg()
    identifier = f"EPSG:{epsg}" if epsg is not None else crs.name
    return identifier, crs.is_projected


def read_shapefile(components: ShapefileComponents) -> FeatureCollection:
    """Decode one Shapefile layer into a FeatureCollection.

    Records are joined to .dbf rows by ordinal position; the .dbf table
    drives the feature count.
    """
    header = read_header(components.shp)
    spans = walk_records(components.shp, header)
    logger.debug(
        "%s.shp: %s, %d records, bbox=%s",
        components.name, header.shape_type_name, len(spans), header.bbox,
    )

    files: dict[str, Any] = {"shp": io.BytesIO(components.shp), "dbf": io.BytesIO(components.dbf)}
    if components.shx is not None and index_matches(components.shx, spans):
        files["shx"] = io.BytesIO(components.shx)

    try:
        with shapefile.Reader(
            encoding=config.DBF_ENCODING, encodingErrors="replace", **files
        ) as sf:
            shapes = sf.shapes()
            rows = [_properties(rec.as_dict()) for rec in sf.records()]
            geometries = [_geometry(shape) for shape in shapes]
    except (shapefile.ShapefileException, struct.error, ValueError, IndexError, TypeError) as exc:
        raise MalformedShapefile(f"Cannot decode {components.name}.shp: {exc}") from exc

    if len(geometries) > len(rows):
        logger.warning(
            "%s: %d shapes but %d attribute rows; extra shapes dropped",
            components.name, len(geometries), len(rows),
        )

    features = [
        Feature(geometry=geometries[i] if i < len(geometries) else None, properties=row)
        for i, row in enumerate(rows)
    ]
    crs, projected = detect_crs(components.prj)
    return FeatureCollection(features=features, crs=crs, projected=projected, name=components.name)


def decode_shapefile_archive(data: bytes) -> FeatureCollection | list[FeatureCollection]:
    """Decode every Shapefile layer found at the root of a zip archive.

    Only flat members are considered: ``<stem>.shp`` with a lower-case
    extension and its ``<stem>.dbf`` sibling, with optional ``.shx``/``.prj``.
    A single layer is returned as-is, several as a list.
    """
    with Archive.open(data) as archive:
        names = archive.names()
        layers = [n for n in names if n.endswith(".shp") and "/" not in n.replace("\\", "/")]
        if not layers:
            raise NoShapefileFound("No .shp at archive root", entries=names)
        collections = [read_shapefile(_root_components(archive, names, n)) for n in layers]

    if len(collections) == 1:
        return collections[0]
    return collections


def _root_components(archive: Archive, names: list[str], shp_name: str) -> ShapefileComponents:
    stem = shp_name[: -len(".shp")]
    dbf_name, shx_name, prj_name = f"{stem}.dbf", f"{stem}.shx", f"{stem}.prj"
    if dbf_name not in names:
        raise MissingDbfComponent(f".dbf missing for {stem}", entries=names)
    return ShapefileComponents(
        name=stem,
        shp=archive.extract(shp_name),
        dbf=archive.extract(dbf_name),
        shx=archive.extract(shx_name) if shx_name in names else None,
        prj=archive.extract_text(prj_name) if prj_name in names else None,
    )


def _geometry(shape: shapefile.Shape) -> Geometry | None:
    if shape.shapeType == shapefile.NULL or not shape.points:
        return None
    return Geometry.model_validate(shape.__geo_interface__)


def _properties(row: dict[str, Any]) -> dict[str, Any]:
    """Make .dbf values JSON-friendly scalars."""
    return {
        key: value.isoformat() if isinstance(value, datetime.date) else value
        for key, value in row.items()
    }
