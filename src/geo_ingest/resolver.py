"""Shapefile archive resolver.

Uploaded Shapefile zips often keep their components in a subfolder or use
mixed-case names (``Data/Parcels.SHP``). The resolver first tries the flat
decoder; when that fails it picks the first ``.shp`` anywhere in the archive,
gathers its siblings by case-insensitive base name and repackages them into a
minimal flat archive with canonical lower-case names before decoding again.
"""

from __future__ import annotations

import logging

from .archive import Archive, basename, build_archive, find_by_basename, find_by_suffix
from .errors import IngestError, MissingDbfComponent, NoShapefileFound
from .models import FeatureCollection
from .reader import decode_shapefile_archive

logger = logging.getLogger(__name__)


def resolve_shapefile_archive(data: bytes) -> FeatureCollection | list[FeatureCollection]:
    """Decode a Shapefile zip, repackaging it when the flat layout is not found."""
    try:
        return decode_shapefile_archive(data)
    except IngestError as exc:
        logger.info("Direct shapefile decode failed (%s); repackaging archive", exc)

    return decode_shapefile_archive(repackage_shapefile_archive(data))


def repackage_shapefile_archive(data: bytes) -> bytes:
    """Rebuild ``data`` as a flat archive holding one canonical Shapefile set."""
    with Archive.open(data) as archive:
        names = archive.names()

        shp_name = find_by_suffix(names, ".shp")
        if shp_name is None:
            raise NoShapefileFound("No .shp found in ZIP", entries=names)

        base = basename(shp_name).rsplit(".", 1)[0]

        dbf_name = find_by_basename(names, f"{base}.dbf")
        if dbf_name is None:
            raise MissingDbfComponent(f".dbf missing for {base}", entries=names)
        shx_name = find_by_basename(names, f"{base}.shx")
        prj_name = find_by_basename(names, f"{base}.prj")

        entries: dict[str, bytes | str] = {
            f"{base}.shp": archive.extract(shp_name),
            f"{base}.dbf": archive.extract(dbf_name),
        }
        if shx_name is not None:
            entries[f"{base}.shx"] = archive.extract(shx_name)
        if prj_name is not None:
            entries[f"{base}.prj"] = archive.extract_text(prj_name)

    logger.info("Repackaged %s from entries: %s", base, ", ".join(names))
    return build_archive(entries)
