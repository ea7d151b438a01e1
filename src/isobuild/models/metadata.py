from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from packaging.metadata import ExceptionGroup, Metadata, parse_email

from isobuild.exceptions import MetadataParseError
from isobuild.models.requirements import Requirement
from isobuild.utils import parse_version

if TYPE_CHECKING:
    from packaging.specifiers import SpecifierSet
    from packaging.version import Version

#: The first metadata version where fields must be static unless listed as ``Dynamic``
PEP643_METADATA_VERSION = "2.2"


def _format_exceptions(exc: Exception) -> str:
    if isinstance(exc, ExceptionGroup):
        return "; ".join(str(e) for e in exc.exceptions)
    return str(exc)


@dataclasses.dataclass(frozen=True)
class CoreMetadata:
    """Core metadata of a distribution, as found in PKG-INFO or a wheel's METADATA"""

    metadata_version: str
    name: str
    version: Version
    requires_dist: tuple[Requirement, ...] = ()
    requires_python: SpecifierSet | None = None
    provides_extra: tuple[str, ...] = ()
    dynamic: tuple[str, ...] = ()

    @classmethod
    def from_bytes(cls, data: bytes | str) -> CoreMetadata:
        """Parse and validate the email-header formatted metadata.

        Unknown headers are tolerated, the core fields are validated.
        """
        try:
            raw, _ = parse_email(data)
            metadata = Metadata.from_raw(raw, validate=True)
        except (ExceptionGroup, ValueError) as e:
            raise MetadataParseError(f"Invalid core metadata: {_format_exceptions(e)}") from e
        return cls(
            metadata_version=metadata.metadata_version,
            name=metadata.name,
            version=metadata.version,
            requires_dist=tuple(Requirement.from_pkg_requirement(r) for r in metadata.requires_dist or ()),
            requires_python=metadata.requires_python,
            provides_extra=tuple(metadata.provides_extra or ()),
            dynamic=tuple(metadata.dynamic or ()),
        )

    def implements_pep643(self) -> bool:
        """Whether the metadata version guarantees static fields (PEP 643)"""
        return parse_version(self.metadata_version) >= parse_version(PEP643_METADATA_VERSION)
