"""Geospatial upload ingestion: Shapefile zips, KML and KMZ to geometry statistics."""

__version__ = "0.1.0"

from .dispatcher import dispatch, ingest
from .errors import IngestError
from .kml_reader import read_kml, read_kmz
from .models import Feature, FeatureCollection, Geometry, GeometryStats, ShapefileComponents
from .reader import decode_shapefile_archive, detect_crs, read_shapefile
from .resolver import resolve_shapefile_archive
from .stats import compute_stats, normalize

__all__ = [
    "Feature",
    "FeatureCollection",
    "Geometry",
    "GeometryStats",
    "IngestError",
    "ShapefileComponents",
    "compute_stats",
    "decode_shapefile_archive",
    "detect_crs",
    "dispatch",
    "ingest",
    "normalize",
    "read_kml",
    "read_kmz",
    "read_shapefile",
    "resolve_shapefile_archive",
]
