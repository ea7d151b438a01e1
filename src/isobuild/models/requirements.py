from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Iterable, Mapping

from packaging.markers import Marker
from packaging.requirements import InvalidRequirement
from packaging.requirements import Requirement as PackageRequirement
from packaging.specifiers import SpecifierSet

from isobuild.exceptions import RequirementError
from isobuild.utils import normalize_name

if TYPE_CHECKING:
    from packaging.version import Version


@dataclasses.dataclass(frozen=True)
class Requirement:
    """A PEP 508 dependency specifier.

    Two requirements are equal when they name the same project (after
    normalization) with the same extras, specifier, marker and URL, so they
    can be collected into sets and unioned.
    """

    name: str
    specifier: SpecifierSet = dataclasses.field(default_factory=SpecifierSet)
    extras: frozenset[str] = frozenset()
    marker: Marker | None = None
    url: str | None = None

    @property
    def key(self) -> str:
        return normalize_name(self.name)

    def identify(self) -> str:
        extras = "[{}]".format(",".join(sorted(self.extras))) if self.extras else ""
        return self.key + extras

    def _hash_key(self) -> tuple:
        return (
            self.key,
            str(self.specifier),
            self.extras,
            str(self.marker) if self.marker else None,
            self.url,
        )

    def __hash__(self) -> int:
        return hash(self._hash_key())

    def __eq__(self, o: object) -> bool:
        return isinstance(o, Requirement) and self._hash_key() == o._hash_key()

    def __lt__(self, o: Requirement) -> bool:
        return self.as_line() < o.as_line()

    def __repr__(self) -> str:
        return f"<Requirement {self.as_line()}>"

    def __str__(self) -> str:
        return self.as_line()

    def as_line(self) -> str:
        extras = "[{}]".format(",".join(sorted(self.extras))) if self.extras else ""
        if self.url:
            line = f"{self.name}{extras} @ {self.url}"
            if self.marker:
                line += " "
        else:
            line = f"{self.name}{extras}{self.specifier}"
        if self.marker:
            line += f"; {self.marker}"
        return line

    def evaluate_marker(self, environment: Mapping[str, str], extras: Iterable[str] = ()) -> bool:
        """Whether the requirement applies to the given PEP 508 environment."""
        if self.marker is None:
            return True
        extras = list(extras)
        if not extras:
            return self.marker.evaluate({**environment, "extra": ""})
        return any(self.marker.evaluate({**environment, "extra": extra}) for extra in extras)

    def contains(self, version: str | Version, prereleases: bool | None = None) -> bool:
        return self.specifier.contains(version, prereleases=prereleases)

    @classmethod
    def from_pkg_requirement(cls, req: PackageRequirement) -> Requirement:
        return cls(
            name=req.name,
            specifier=req.specifier,
            extras=frozenset(normalize_name(e) for e in req.extras),
            marker=req.marker,
            url=req.url,
        )


def parse_requirement(line: str) -> Requirement:
    try:
        pkg_req = PackageRequirement(line)
    except InvalidRequirement as e:
        raise RequirementError(f"Invalid requirement {line!r}: {e}") from None
    return Requirement.from_pkg_requirement(pkg_req)
