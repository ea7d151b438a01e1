from __future__ import annotations

import dataclasses
import os
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from packaging.utils import InvalidWheelFilename, canonicalize_name, parse_wheel_filename

from isobuild.exceptions import InvalidFilename, MetadataParseError
from isobuild.models.metadata import CoreMetadata

if TYPE_CHECKING:
    from packaging.tags import Tag
    from packaging.version import Version


@dataclasses.dataclass(frozen=True)
class Wheel:
    """A wheel file on disk"""

    path: Path
    name: str
    version: Version
    tags: frozenset[Tag]

    @classmethod
    def from_path(cls, path: str | Path, normalized_name: str | None = None) -> Wheel:
        path = Path(path)
        try:
            name, version, _, tags = parse_wheel_filename(path.name)
        except InvalidWheelFilename as e:
            raise InvalidFilename(str(e)) from None
        if normalized_name is not None and name != canonicalize_name(normalized_name):
            raise InvalidFilename(f"{path.name!r} does not match the expected package name {normalized_name!r}")
        return cls(path=path, name=name, version=version, tags=tags)

    @property
    def filename(self) -> str:
        return self.path.name

    def _dist_info_dir(self, zf: zipfile.ZipFile) -> str:
        candidates = {name.split("/")[0] for name in zf.namelist() if name.split("/")[0].endswith(".dist-info")}
        for candidate in candidates:
            if canonicalize_name(candidate[: -len(".dist-info")].rpartition("-")[0]) == self.name:
                return candidate
        if len(candidates) == 1:
            return candidates.pop()
        raise MetadataParseError(f"The wheel {self.filename} doesn't contain a unique .dist-info directory")

    def metadata(self) -> tuple[bytes, CoreMetadata]:
        """Read and parse the METADATA file of the wheel"""
        with zipfile.ZipFile(self.path) as zf:
            dist_info = self._dist_info_dir(zf)
            try:
                data = zf.read(f"{dist_info}/METADATA")
            except KeyError:
                raise MetadataParseError(f"The wheel {self.filename} has no METADATA file") from None
        return data, CoreMetadata.from_bytes(data)

    def __fspath__(self) -> str:
        return os.fspath(self.path)
