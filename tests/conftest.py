import io
import struct
import zipfile

import pytest
import shapefile

WGS84_WKT = (
    'GEOGCS["WGS 84",DATUM["WGS_1984",SPHEROID["WGS 84",6378137,298.257223563,'
    'AUTHORITY["EPSG","7030"]],AUTHORITY["EPSG","6326"]],'
    'PRIMEM["Greenwich",0,AUTHORITY["EPSG","8901"]],'
    'UNIT["degree",0.0174532925199433,AUTHORITY["EPSG","9122"]],'
    'AUTHORITY["EPSG","4326"]]'
)

# ~1 km per side at the equator
SIDE = 0.009


def square(x0: float, y0: float, side: float = SIDE) -> list[list[float]]:
    """A closed clockwise ring (shapefile exterior orientation)."""
    return [[x0, y0], [x0, y0 + side], [x0 + side, y0 + side], [x0 + side, y0], [x0, y0]]


def build_shapefile(shape_type: int, geometries: list, names: list[str]) -> dict[str, bytes]:
    """Write an in-memory shapefile and return its .shp/.shx/.dbf buffers."""
    shp, shx, dbf = io.BytesIO(), io.BytesIO(), io.BytesIO()
    w = shapefile.Writer(shp=shp, shx=shx, dbf=dbf, shapeType=shape_type)
    w.field("name", "C", size=20)
    w.field("rank", "N", size=6)
    for rank, (geom, name) in enumerate(zip(geometries, names), start=1):
        if geom is None:
            w.null()
        elif shape_type == shapefile.POLYGON:
            w.poly(geom)
        elif shape_type == shapefile.POLYLINE:
            w.line(geom)
        elif shape_type == shapefile.POINT:
            w.point(*geom)
        w.record(name, rank)
    w.close()
    return {"shp": shp.getvalue(), "shx": shx.getvalue(), "dbf": dbf.getvalue()}


def build_zip(entries: dict[str, bytes | str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buf.getvalue()


@pytest.fixture
def parcel_layer():
    """Three ~1 km² polygons along the equator."""
    rings = [[square(0.0, 0.0)], [square(0.01, 0.0)], [square(0.02, 0.0)]]
    return build_shapefile(shapefile.POLYGON, rings, ["north", "middle", "south"])


@pytest.fixture
def line_layer():
    lines = [[[[0, 0], [1, 1], [2, 1]]], [[[5, 5], [6, 7]]]]
    return build_shapefile(shapefile.POLYLINE, lines, ["a", "b"])


@pytest.fixture
def point_layer():
    return build_shapefile(shapefile.POINT, [(1.5, 2.5), (3.0, -1.0)], ["p1", "p2"])


@pytest.fixture
def flat_parcels_zip(parcel_layer):
    return build_zip({
        "parcels.shp": parcel_layer["shp"],
        "parcels.shx": parcel_layer["shx"],
        "parcels.dbf": parcel_layer["dbf"],
        "parcels.prj": WGS84_WKT,
    })


@pytest.fixture
def nested_parcels_zip(parcel_layer):
    return build_zip({
        "data/Parcels.SHP": parcel_layer["shp"],
        "data/Parcels.DBF": parcel_layer["dbf"],
        "data/Parcels.PRJ": WGS84_WKT,
    })


ROUTE_KML = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <Placemark>
      <name>Leg 1</name>
      <LineString>
        <coordinates>-3.5,53.5,-10 -3.4,53.6,-20 -3.3,53.7,-30</coordinates>
      </LineString>
    </Placemark>
    <Placemark>
      <name>Leg 2</name>
      <LineString>
        <coordinates>-3.3,53.7 -3.2,53.9</coordinates>
      </LineString>
    </Placemark>
  </Document>
</kml>"""


@pytest.fixture
def route_kml():
    return ROUTE_KML.encode()


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def make_shapefile():
    return build_shapefile


@pytest.fixture
def wgs84_wkt():
    return WGS84_WKT


def set_encrypted_flag(data: bytes) -> bytes:
    """Mark every central directory entry of a zip as encrypted."""
    buf = bytearray(data)
    eocd = buf.rfind(b"PK\x05\x06")
    (count,) = struct.unpack("<H", buf[eocd + 10 : eocd + 12])
    (offset,) = struct.unpack("<I", buf[eocd + 16 : eocd + 20])
    for _ in range(count):
        buf[offset + 8] |= 0x01
        name_len, extra_len, comment_len = struct.unpack("<3H", buf[offset + 28 : offset + 34])
        offset += 46 + name_len + extra_len + comment_len
    return bytes(buf)


@pytest.fixture
def mark_encrypted():
    return set_encrypted_flag
