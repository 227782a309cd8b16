"""Format dispatch and the ``ingest`` entry point."""

from __future__ import annotations

import logging

from .errors import IngestError, ProcessingError, UnsupportedFileType
from .kml_reader import read_kml, read_kmz
from .models import GeometryStats
from .resolver import resolve_shapefile_archive
from .stats import RawDecodeResult, compute_stats, normalize

logger = logging.getLogger(__name__)

HANDLERS = {
    ".zip": resolve_shapefile_archive,
    ".kml": read_kml,
    ".kmz": read_kmz,
}


def dispatch(data: bytes, filename: str) -> RawDecodeResult:
    """Route ``data`` to a decoder by the declared file extension.

    The extension is trusted as-is; file contents are never sniffed.
    """
    name = (filename or "").lower()
    for suffix, handler in HANDLERS.items():
        if name.endswith(suffix):
            logger.debug("Decoding %s with %s", filename, handler.__name__)
            return handler(data)
    raise UnsupportedFileType(
        f"Unsupported file type for {filename!r}. Use .zip (SHP), .kml or .kmz"
    )


def ingest(data: bytes, filename: str) -> GeometryStats:
    """Decode an upload and summarise its geometries.

    Raises:
        IngestError: the upload could not be decoded, or statistics failed
            (as :class:`ProcessingError`).
    """
    try:
        raw = dispatch(data, filename)
        stats = compute_stats(normalize(raw))
    except IngestError:
        raise
    except Exception as exc:
        logger.exception("Geometry processing failed for %s", filename)
        raise ProcessingError(f"Error processing geometry: {exc}") from exc

    logger.info(
        "Ingested %s: %d features %s, %.2f ha",
        filename, stats.feature_count, stats.geom_types, stats.area_ha,
    )
    return stats
