"""Error kinds raised by the ingestion pipeline.

Every failure is an :class:`IngestError` carrying a wire ``kind`` and whether
it was caused by the client's input (HTTP 400) or by processing (HTTP 500).
"""

from __future__ import annotations

from collections.abc import Sequence


class IngestError(Exception):
    kind = "IngestError"
    client_error = True

    def __init__(self, message: str, *, entries: Sequence[str] | None = None):
        if entries is not None:
            message = f"{message}. Files: {', '.join(entries)}"
        super().__init__(message)
        self.message = message
        self.entries = list(entries) if entries is not None else None

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class UnsupportedFileType(IngestError):
    kind = "UnsupportedFileType"


class ArchiveCorrupt(IngestError):
    kind = "ArchiveCorrupt"


class EntryNotFound(IngestError):
    kind = "EntryNotFound"


class NoShapefileFound(IngestError):
    kind = "NoShapefileFound"


class MissingDbfComponent(IngestError):
    kind = "MissingDbfComponent"


class NoKmlFound(IngestError):
    kind = "NoKmlFound"


class MalformedShapefile(IngestError):
    kind = "MalformedShapefile"


class MalformedXml(IngestError):
    kind = "MalformedXml"


class ProcessingError(IngestError):
    kind = "ProcessingError"
    client_error = False
