"""
Central configuration, read once from the environment.
"""
import os


# Largest upload the HTTP adapter accepts (matches the 25mb body limit of the old service)
MAX_UPLOAD_BYTES: int = int(os.getenv("GEO_INGEST_MAX_UPLOAD_BYTES", str(25 * 1024 * 1024)))

# Encoding used for .dbf attribute text; undecodable bytes are replaced
DBF_ENCODING: str = os.getenv("GEO_INGEST_DBF_ENCODING", "utf-8")

# Ellipsoid for geodesic area of lon/lat geometries
AREA_ELLIPSOID: str = os.getenv("GEO_INGEST_AREA_ELLIPSOID", "WGS84")

LOG_LEVEL: str = os.getenv("GEO_INGEST_LOG_LEVEL", "INFO")

HOST: str = os.getenv("GEO_INGEST_HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "3000"))
