"""Pydantic data models for the ingestion pipeline."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

GEOMETRY_TYPES = (
    "Point",
    "LineString",
    "Polygon",
    "MultiPoint",
    "MultiLineString",
    "MultiPolygon",
    "GeometryCollection",
)


class ArchiveEntry(BaseModel):
    """A single member pulled out of a zip archive."""

    name: str
    data: bytes


class ShapefileComponents(BaseModel):
    """The component buffers of one Shapefile layer."""

    name: str
    shp: bytes
    dbf: bytes
    shx: bytes | None = None
    prj: str | None = None


class Geometry(BaseModel):
    """A GeoJSON geometry."""

    type: str
    coordinates: Any = None
    geometries: list[Geometry] | None = None

    def to_geojson(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Feature(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: Geometry | None = None
    properties: dict[str, Any] = Field(default_factory=dict)


class FeatureCollection(BaseModel):
    """Normalized output of every decoder."""

    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[Feature] = Field(default_factory=list)
    crs: str | None = None
    projected: bool | None = None
    name: str | None = None


class GeometryStats(BaseModel):
    """Summary statistics of one ingested upload."""

    model_config = ConfigDict(populate_by_name=True)

    feature_count: int = Field(alias="features", ge=0)
    geom_types: dict[str, int] = Field(alias="geomTypes")
    area_ha: float = Field(alias="areaHa", ge=0)
    bbox: tuple[float, float, float, float] | None = None
    crs: str | None = None


class IngestFailure(BaseModel):
    """Body returned for a failed ingestion."""

    error: str
    message: str
