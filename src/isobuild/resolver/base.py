from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from isobuild.utils import normalize_name

if TYPE_CHECKING:
    from typing import Awaitable, Iterable, Mapping, Protocol

    from packaging.version import Version

    from isobuild.index import ArtifactInfo
    from isobuild.models.markers import Pep508EnvMarkers, WheelTags
    from isobuild.models.requirements import Requirement
    from isobuild.models.wheel import Wheel

    class ArtifactStore(Protocol):
        """What the resolver and the build orchestrator need from a package database"""

        def available_artifacts(self, name: str) -> Mapping[Version, list[ArtifactInfo]]: ...

        def get_wheel(self, artifact_info: ArtifactInfo) -> Wheel: ...

        async def get_artifact(self, artifact_info: ArtifactInfo) -> Wheel: ...

    class ResolveFunc(Protocol):
        def __call__(
            self,
            package_db: ArtifactStore,
            requirements: Iterable[Requirement],
            env_markers: Pep508EnvMarkers,
            wheel_tags: WheelTags | None,
            locked_packages: Mapping[str, PinnedPackage] | None = None,
            favored_packages: Mapping[str, PinnedPackage] | None = None,
            options: ResolveOptions | None = None,
        ) -> Awaitable[list[PinnedPackage]]: ...

else:
    ResolveFunc = object


@dataclasses.dataclass(frozen=True)
class ResolveOptions:
    """Options of the resolution process

    Args:
        max_rounds (int): the maximum rounds the resolver may take
        allow_prereleases (bool): whether pre-releases are acceptable without being asked for
    """

    max_rounds: int = 10000
    allow_prereleases: bool = False


@dataclasses.dataclass(frozen=True)
class PinnedPackage:
    """A package pinned to a single version by the resolver, with its candidate artifacts
    ordered by preference.
    """

    name: str
    version: Version
    artifacts: tuple[ArtifactInfo, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_name(self.name))

    def __str__(self) -> str:
        return f"{self.name} {self.version}"
