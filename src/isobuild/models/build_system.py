from __future__ import annotations

import dataclasses
from typing import Any, Iterable, Mapping

from isobuild.compat import tomllib
from isobuild.exceptions import BuildSystemNotFound, BuildSystemParseError, RequirementError
from isobuild.models.requirements import Requirement, parse_requirement

#: The backend used when the project does not declare one
DEFAULT_BUILD_BACKEND = "setuptools.build_meta:__legacy__"
#: Requirements of the legacy setuptools backend
DEFAULT_BUILD_REQUIRES = ("setuptools>=40.8.0", "wheel")


@dataclasses.dataclass(frozen=True)
class BuildSystem:
    """The ``[build-system]`` table of a pyproject.toml"""

    requires: tuple[Requirement, ...] = ()
    build_backend: str | None = None
    backend_path: tuple[str, ...] | None = None

    @classmethod
    def from_table(cls, table: Mapping[str, Any]) -> BuildSystem:
        if not isinstance(table, Mapping):
            raise BuildSystemParseError("could not parse pyproject.toml: build-system must be a table")
        if "requires" not in table:
            raise BuildSystemParseError("could not parse pyproject.toml: missing field `requires` in build-system")
        requires = table["requires"]
        if not isinstance(requires, list) or not all(isinstance(r, str) for r in requires):
            raise BuildSystemParseError(
                "could not parse pyproject.toml: build-system.requires must be a list of strings"
            )
        try:
            parsed = tuple(parse_requirement(r) for r in requires)
        except RequirementError as e:
            raise BuildSystemParseError(f"could not parse pyproject.toml: {e}") from e

        build_backend = table.get("build-backend")
        if build_backend is not None and not isinstance(build_backend, str):
            raise BuildSystemParseError("could not parse pyproject.toml: build-system.build-backend must be a string")
        backend_path = table.get("backend-path")
        if backend_path is not None:
            if not isinstance(backend_path, list) or not all(isinstance(p, str) for p in backend_path):
                raise BuildSystemParseError(
                    "could not parse pyproject.toml: build-system.backend-path must be a list of strings"
                )
            backend_path = tuple(backend_path)
        return cls(requires=parsed, build_backend=build_backend, backend_path=backend_path)

    @property
    def entry_point(self) -> str:
        """The backend object to invoke, falling back to the legacy setuptools backend"""
        return self.build_backend or DEFAULT_BUILD_BACKEND


def parse_build_system(source: bytes | str) -> BuildSystem:
    """Parse the build declaration out of the content of a pyproject.toml"""
    if isinstance(source, bytes):
        try:
            source = source.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BuildSystemParseError(f"could not parse pyproject.toml (bad encoding): {e}") from e
    try:
        document = tomllib.loads(source)
    except tomllib.TOMLDecodeError as e:
        raise BuildSystemParseError(f"could not parse pyproject.toml (bad toml): {e}") from e
    if "build-system" not in document:
        raise BuildSystemNotFound()
    return BuildSystem.from_table(document["build-system"])


def build_requirements(build_system: BuildSystem) -> list[Requirement]:
    """Return the requirements to install before the backend can be invoked.

    Projects without a declared backend get the legacy setuptools requirements
    in addition to whatever they list.
    """
    requirements = list(dict.fromkeys(build_system.requires))
    if build_system.build_backend is None:
        _extend_missing(requirements, (parse_requirement(r) for r in DEFAULT_BUILD_REQUIRES))
    return requirements


def _extend_missing(requirements: list[Requirement], extra: Iterable[Requirement]) -> None:
    known = {r.key for r in requirements}
    requirements.extend(r for r in extra if r.key not in known)
