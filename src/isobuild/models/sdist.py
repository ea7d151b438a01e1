from __future__ import annotations

import contextlib
import dataclasses
import enum
import gzip
import io
import os
import tarfile
import threading
import zlib
from pathlib import Path, PurePosixPath
from typing import IO, TYPE_CHECKING

from packaging.version import InvalidVersion, Version

from isobuild.exceptions import (
    ArchiveError,
    InvalidFilename,
    MetadataParseError,
    NoPkgInfoFound,
    NoPyProjectTomlFound,
    SDistError,
    UnpackError,
    UnsupportedFormat,
)
from isobuild.models.build_system import BuildSystem, parse_build_system
from isobuild.models.metadata import CoreMetadata
from isobuild.termui import logger
from isobuild.utils import is_path_relative_to, normalize_name, split_archive_suffix

if TYPE_CHECKING:
    from typing import Iterator

_CORRUPT_ARCHIVE_ERRORS = (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile)
_EXTRACT_KWARGS = {"filter": "data"} if hasattr(tarfile, "data_filter") else {}
_FILTER_ERRORS = getattr(tarfile, "FilterError", ())


class SDistFormat(enum.Enum):
    TAR = ".tar"
    TAR_GZ = ".tar.gz"
    OTHER = "other"

    @classmethod
    def from_suffix(cls, suffix: str) -> SDistFormat | None:
        suffix = suffix.lower()
        if suffix == ".tar.gz":
            return cls.TAR_GZ
        if suffix == ".tar":
            return cls.TAR
        if suffix in (".zip", ".tgz", ".tar.bz2", ".tar.xz"):
            return cls.OTHER
        return None

    @property
    def tarfile_mode(self) -> str:
        if self is SDistFormat.TAR_GZ:
            return "r|gz"
        if self is SDistFormat.TAR:
            return "r|"
        raise UnsupportedFormat()


@dataclasses.dataclass(frozen=True)
class SDistFilename:
    """The identity of a source distribution parsed from its filename"""

    distribution: str
    version: Version
    format: SDistFormat
    raw_version: str

    @classmethod
    def from_filename(cls, filename: str, normalized_name: str) -> SDistFilename:
        stem, suffix = split_archive_suffix(filename)
        format = SDistFormat.from_suffix(suffix)
        if format is None:
            raise InvalidFilename(f"{filename!r} is not a known source distribution archive")
        expected = normalize_name(normalized_name)
        for i, char in enumerate(stem):
            if char == "-" and normalize_name(stem[:i]) == expected:
                distribution, raw_version = stem[:i], stem[i + 1 :]
                break
        else:
            raise InvalidFilename(f"{filename!r} does not match the expected package name {normalized_name!r}")
        try:
            version = Version(raw_version)
        except InvalidVersion:
            raise InvalidFilename(f"{filename!r} has an invalid version {raw_version!r}") from None
        return cls(distribution=distribution, version=version, format=format, raw_version=raw_version)

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.distribution)

    @property
    def package_dir_name(self) -> str:
        """The top level directory the archive is expected to unpack into"""
        return f"{self.distribution}-{self.raw_version}"

    def __str__(self) -> str:
        suffix = self.format.value if self.format is not SDistFormat.OTHER else ""
        return f"{self.distribution}-{self.raw_version}{suffix}"


def _check_member(member: tarfile.TarInfo, root: str) -> None:
    """Reject members that would be written outside of ``root``"""
    name = member.name
    if os.path.isabs(name) or name.startswith(("/", "\\")):
        raise UnpackError(f"Refusing to extract {name!r}: absolute path")
    target = os.path.realpath(os.path.join(root, name))
    if not is_path_relative_to(target, root):
        raise UnpackError(f"Refusing to extract {name!r}: path is outside of the destination")
    if member.isdev():
        raise UnpackError(f"Refusing to extract {name!r}: device file")
    if member.issym():
        link_target = os.path.realpath(os.path.join(os.path.dirname(target), member.linkname))
        if os.path.isabs(member.linkname) or not is_path_relative_to(link_target, root):
            raise UnpackError(f"Refusing to extract {name!r}: symlink points outside of the destination")
    elif member.islnk():
        link_target = os.path.realpath(os.path.join(root, member.linkname))
        if not is_path_relative_to(link_target, root):
            raise UnpackError(f"Refusing to extract {name!r}: hard link points outside of the destination")


class ArchiveReader:
    """Reads a tar based source distribution from a seekable binary stream.

    Every operation rewinds the stream and makes one linear pass over the
    entries, so operations must not be interleaved on the same stream.
    """

    def __init__(self, stream: IO[bytes], format: SDistFormat) -> None:
        self.stream = stream
        self.format = format

    @contextlib.contextmanager
    def open(self) -> Iterator[tarfile.TarFile]:
        """Rewind the stream and open it as a tar archive."""
        self.stream.seek(0)
        mode = self.format.tarfile_mode
        try:
            with tarfile.open(fileobj=self.stream, mode=mode) as tar:
                yield tar
        except _CORRUPT_ARCHIVE_ERRORS as e:
            if isinstance(e, _FILTER_ERRORS):
                raise UnpackError(str(e)) from e
            raise ArchiveError(f"Could not read the sdist archive: {e}") from e

    def find_entry(self, name: str) -> bytes | None:
        """Return the content of the first file whose path ends with ``name``.

        The comparison is made on whole path components.
        """
        suffix = PurePosixPath(name).parts
        with self.open() as tar:
            for member in tar:
                if not member.isfile():
                    continue
                if PurePosixPath(member.name).parts[-len(suffix) :] == suffix:
                    fp = tar.extractfile(member)
                    if fp is None:
                        raise ArchiveError(f"Could not read {member.name} from the sdist archive")
                    return fp.read()
        return None

    def extract_to(self, dest: str | Path) -> None:
        """Unpack all entries into ``dest`` using their relative paths."""
        os.makedirs(dest, exist_ok=True)
        root = os.path.realpath(dest)
        with self.open() as tar:
            for member in tar:
                _check_member(member, root)
                tar.extract(member, root, **_EXTRACT_KWARGS)


class SDist:
    """A source distribution archive.

    The underlying stream supports a single cursor, so all reads are
    serialized by a lock and each one starts from a fresh rewind.
    """

    def __init__(self, name: SDistFilename, file: IO[bytes]) -> None:
        self.name = name
        self._reader = ArchiveReader(file, name.format)
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<SDist {self.name}>"

    @classmethod
    def from_path(cls, path: str | Path, normalized_name: str) -> SDist:
        filename = os.path.basename(os.fspath(path))
        if not filename:
            raise InvalidFilename(f"{path!r} does not contain a filename")
        name = SDistFilename.from_filename(filename, normalized_name)
        return cls(name, open(path, "rb"))

    @classmethod
    def from_bytes(cls, filename: str, data: bytes, normalized_name: str) -> SDist:
        name = SDistFilename.from_filename(filename, normalized_name)
        return cls(name, io.BytesIO(data))

    def close(self) -> None:
        with self._lock:
            self._reader.stream.close()

    def __enter__(self) -> SDist:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def find_entry(self, name: str) -> bytes | None:
        with self._lock:
            return self._reader.find_entry(name)

    def read_package_info(self) -> tuple[bytes, CoreMetadata]:
        """Read and parse the PKG-INFO of the archive."""
        data = self.find_entry("PKG-INFO")
        if data is None:
            raise NoPkgInfoFound()
        return data, CoreMetadata.from_bytes(data)

    def read_build_info(self) -> BuildSystem:
        """Read the build-system table of the archive's pyproject.toml."""
        data = self.find_entry("pyproject.toml")
        if data is None:
            raise NoPyProjectTomlFound()
        return parse_build_system(data)

    def extract_to(self, work_dir: str | Path) -> None:
        with self._lock:
            self._reader.extract_to(work_dir)

    def pep643_metadata(self) -> tuple[bytes, CoreMetadata] | None:
        """Return the PKG-INFO metadata if it can be trusted without building (PEP 643)."""
        try:
            data, metadata = self.read_package_info()
        except (SDistError, ArchiveError, MetadataParseError, OSError) as e:
            logger.debug("No static metadata for %s: %s", self.name, e)
            return None
        if not metadata.implements_pep643():
            logger.debug("Metadata version %s of %s is not static", metadata.metadata_version, self.name)
            return None
        return data, metadata
