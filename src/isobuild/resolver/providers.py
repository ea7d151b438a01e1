from __future__ import annotations

import dataclasses
import functools
import os
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping, Sequence

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from resolvelib import AbstractProvider

from isobuild.index import ArtifactInfo
from isobuild.models.requirements import Requirement
from isobuild.termui import logger
from isobuild.utils import parse_version

if TYPE_CHECKING:
    from packaging.version import Version
    from resolvelib.resolvers import RequirementInformation

    from isobuild.models.markers import Pep508EnvMarkers, WheelTags
    from isobuild.resolver.base import ArtifactStore, PinnedPackage, ResolveOptions


@dataclasses.dataclass(frozen=True)
class Candidate:
    name: str
    version: Version
    artifacts: tuple[ArtifactInfo, ...]
    extras: frozenset[str] = frozenset()

    def identify(self) -> str:
        extras = "[{}]".format(",".join(sorted(self.extras))) if self.extras else ""
        return self.name + extras


def _split_identifier(identifier: str) -> str:
    return identifier.partition("[")[0]


class BuildProvider(AbstractProvider):
    """A resolvelib provider that only considers wheels"""

    def __init__(
        self,
        package_db: ArtifactStore,
        env_markers: Pep508EnvMarkers,
        wheel_tags: WheelTags | None,
        locked_packages: Mapping[str, PinnedPackage],
        favored_packages: Mapping[str, PinnedPackage],
        options: ResolveOptions,
    ) -> None:
        self.package_db = package_db
        self.env_markers = env_markers
        self.wheel_tags = wheel_tags
        self.locked_packages = locked_packages
        self.favored_packages = favored_packages
        self.options = options
        self._python_version = parse_version(
            env_markers.get("python_full_version") or env_markers.get("python_version", "3")
        )

    def identify(self, requirement_or_candidate: Requirement | Candidate) -> str:
        return requirement_or_candidate.identify()

    def get_preference(
        self,
        identifier: str,
        resolutions: Mapping[str, Candidate],
        candidates: Mapping[str, Iterator[Candidate]],
        information: Mapping[str, Iterator[RequirementInformation]],
        backtrack_causes: Sequence[RequirementInformation],
    ) -> tuple:
        name = _split_identifier(identifier)
        is_locked = name in self.locked_packages
        is_pinned = any(
            any(sp.operator in ("==", "===") for sp in info.requirement.specifier)
            for info in information[identifier]
        )
        is_backtrack_cause = any(info.requirement.identify() == identifier for info in backtrack_causes)
        return (not is_locked, not is_pinned, not is_backtrack_cause, identifier)

    def _python_compatible(self, artifact: ArtifactInfo) -> bool:
        if not artifact.requires_python:
            return True
        try:
            return SpecifierSet(artifact.requires_python).contains(self._python_version, prereleases=True)
        except InvalidSpecifier:
            logger.debug("Invalid requires-python %r of %s", artifact.requires_python, artifact.filename)
            return True

    def _find_versions(self, name: str) -> Iterable[tuple[Version, tuple[ArtifactInfo, ...]]]:
        if name in self.locked_packages:
            pinned = self.locked_packages[name]
            yield pinned.version, tuple(pinned.artifacts)
            return
        favored = self.favored_packages.get(name)
        found: list[tuple[Version, tuple[ArtifactInfo, ...]]] = []
        for version, artifacts in self.package_db.available_artifacts(name).items():
            usable = tuple(
                a
                for a in artifacts
                if self._python_compatible(a) and (self.wheel_tags is None or self.wheel_tags.is_compatible(a.filename))
            )
            if usable:
                found.append((version, usable))
        if favored is not None:
            found.sort(key=lambda item: item[0] != favored.version)
        yield from found

    def find_matches(
        self,
        identifier: str,
        requirements: Mapping[str, Iterator[Requirement]],
        incompatibilities: Mapping[str, Iterator[Candidate]],
    ) -> Iterable[Candidate]:
        name = _split_identifier(identifier)
        reqs = list(requirements[identifier])
        extras = frozenset(e for r in reqs for e in r.extras)
        bad_versions = {c.version for c in incompatibilities[identifier]}
        url_reqs = [r for r in reqs if r.url]
        if url_reqs:
            url = url_reqs[0].url
            assert url is not None
            filename = os.path.basename(url.split("#", 1)[0])
            try:
                version = parse_version(filename.split("-")[1])
            except (IndexError, ValueError):
                logger.debug("Can't get the version of %s", url)
                return []
            artifact = ArtifactInfo(filename=filename, url=url)
            return [Candidate(name, version, (artifact,), extras)]

        prereleases = True if self.options.allow_prereleases else None
        return [
            Candidate(name, version, artifacts, extras)
            for version, artifacts in self._find_versions(name)
            if version not in bad_versions and all(r.contains(version, prereleases) for r in reqs)
        ]

    def is_satisfied_by(self, requirement: Requirement, candidate: Candidate) -> bool:
        if requirement.url:
            return any(a.url == requirement.url for a in candidate.artifacts)
        return requirement.contains(candidate.version, prereleases=True)

    @functools.lru_cache(maxsize=None)  # noqa: B019
    def _requires_dist(self, name: str, version: Version, artifact: ArtifactInfo) -> tuple[Requirement, ...]:
        wheel = self.package_db.get_wheel(artifact)
        _, metadata = wheel.metadata()
        return metadata.requires_dist

    def get_dependencies(self, candidate: Candidate) -> list[Requirement]:
        requires = self._requires_dist(candidate.name, candidate.version, candidate.artifacts[0])
        dependencies: list[Requirement] = []
        if candidate.extras:
            dependencies.append(Requirement(name=candidate.name, specifier=SpecifierSet(f"=={candidate.version}")))
        dependencies.extend(r for r in requires if r.evaluate_marker(self.env_markers, candidate.extras))
        return dependencies
