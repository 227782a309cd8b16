"""Tests for the shapefile archive resolver fallback."""

import logging

import pytest

from geo_ingest import resolve_shapefile_archive
from geo_ingest.archive import Archive
from geo_ingest.errors import ArchiveCorrupt, MalformedShapefile, MissingDbfComponent, NoShapefileFound
from geo_ingest.resolver import repackage_shapefile_archive


class TestDirect:
    def test_flat_zip_needs_no_repackaging(self, flat_parcels_zip, caplog):
        with caplog.at_level(logging.INFO, logger="geo_ingest.resolver"):
            fc = resolve_shapefile_archive(flat_parcels_zip)
        assert len(fc.features) == 3
        assert "repackaging" not in caplog.text


class TestFallback:
    def test_nested_mixed_case_matches_flat(self, flat_parcels_zip, nested_parcels_zip, caplog):
        with caplog.at_level(logging.INFO, logger="geo_ingest.resolver"):
            nested = resolve_shapefile_archive(nested_parcels_zip)
        flat = resolve_shapefile_archive(flat_parcels_zip)
        assert "repackaging" in caplog.text
        assert nested.model_dump() == flat.model_dump()

    def test_upper_case_flat_names(self, make_zip, parcel_layer):
        data = make_zip({"PARCELS.SHP": parcel_layer["shp"], "PARCELS.DBF": parcel_layer["dbf"]})
        fc = resolve_shapefile_archive(data)
        assert fc.name == "parcels"
        assert len(fc.features) == 3

    def test_backslash_paths(self, make_zip, parcel_layer):
        data = make_zip({
            "export\\Parcels.shp": parcel_layer["shp"],
            "export\\Parcels.dbf": parcel_layer["dbf"],
            "export\\Parcels.shx": parcel_layer["shx"],
        })
        assert len(resolve_shapefile_archive(data).features) == 3

    def test_repackaged_names_are_canonical(self, nested_parcels_zip, wgs84_wkt):
        with Archive.open(repackage_shapefile_archive(nested_parcels_zip)) as archive:
            assert sorted(archive.names()) == ["parcels.dbf", "parcels.prj", "parcels.shp"]
            assert archive.extract_text("parcels.prj") == wgs84_wkt

    def test_missing_dbf(self, make_zip, parcel_layer):
        data = make_zip({"data/Parcels.shp": parcel_layer["shp"], "data/Parcels.shx": parcel_layer["shx"]})
        with pytest.raises(MissingDbfComponent) as excinfo:
            resolve_shapefile_archive(data)
        assert "data/Parcels.shx" in str(excinfo.value)

    def test_dbf_must_match_whole_base_name(self, make_zip, parcel_layer):
        data = make_zip({"a/parcels.shp": parcel_layer["shp"], "a/oldparcels.dbf": parcel_layer["dbf"]})
        with pytest.raises(MissingDbfComponent):
            resolve_shapefile_archive(data)

    def test_no_shp(self, make_zip):
        with pytest.raises(NoShapefileFound) as excinfo:
            resolve_shapefile_archive(make_zip({"readme.txt": "hi", "photo.jpg": b"\xff"}))
        assert excinfo.value.entries == ["readme.txt", "photo.jpg"]
        assert "readme.txt, photo.jpg" in excinfo.value.message

    def test_corrupt_shp_propagates(self, make_zip, parcel_layer):
        data = make_zip({"sub/parcels.shp": b"garbage", "sub/parcels.dbf": parcel_layer["dbf"]})
        with pytest.raises(MalformedShapefile):
            resolve_shapefile_archive(data)

    def test_not_a_zip(self):
        with pytest.raises(ArchiveCorrupt):
            resolve_shapefile_archive(b"not a zip")
