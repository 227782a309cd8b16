"""In-memory zip archive access with case-insensitive member lookup."""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from collections.abc import Iterable, Mapping

from .errors import ArchiveCorrupt, EntryNotFound
from .models import ArchiveEntry

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Lower-case a member name and unify path separators to ``/``."""
    return name.replace("\\", "/").lower()


def basename(name: str) -> str:
    return normalize_name(name).rsplit("/", 1)[-1]


def find_by_suffix(names: Iterable[str], suffix: str) -> str | None:
    """Return the first name ending with ``suffix``, ignoring case."""
    suffix = normalize_name(suffix)
    for name in names:
        if normalize_name(name).endswith(suffix):
            return name
    return None


def find_by_basename(names: Iterable[str], target: str) -> str | None:
    """Return the first name whose last path segment equals ``target``, ignoring case.

    ``parcels.dbf`` matches ``parcels.dbf``, ``data/Parcels.DBF`` and
    ``data\\PARCELS.dbf`` but not ``oldparcels.dbf``.
    """
    target = normalize_name(target)
    for name in names:
        if basename(name) == target:
            return name
    return None


class Archive:
    """A read-only zip archive opened over a byte buffer."""

    def __init__(self, zf: zipfile.ZipFile):
        self._zf = zf

    @classmethod
    def open(cls, data: bytes) -> Archive:
        try:
            zf = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, OSError) as exc:
            raise ArchiveCorrupt(f"Cannot open zip archive: {exc}") from exc
        return cls(zf)

    def __enter__(self) -> Archive:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._zf.close()

    def names(self) -> list[str]:
        """Member names in archive order, directories excluded."""
        return [info.filename for info in self._zf.infolist() if not info.is_dir()]

    def extract(self, name: str) -> bytes:
        try:
            return self._zf.read(name)
        except KeyError as exc:
            raise EntryNotFound(f"No entry named {name!r} in archive") from exc
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as exc:
            raise ArchiveCorrupt(f"Cannot extract {name!r}: {exc}") from exc

    def extract_text(self, name: str, encoding: str = "utf-8") -> str:
        return self.extract(name).decode(encoding, errors="replace")

    def entry(self, name: str) -> ArchiveEntry:
        return ArchiveEntry(name=name, data=self.extract(name))


def build_archive(entries: Mapping[str, bytes | str]) -> bytes:
    """Write ``entries`` into a new deflated zip and return its bytes."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    logger.debug("Built archive with entries: %s", ", ".join(entries))
    return buf.getvalue()
