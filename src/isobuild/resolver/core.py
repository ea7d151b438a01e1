from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Iterable, Mapping

from resolvelib import Resolver
from resolvelib.resolvers import ResolutionImpossible, ResolutionTooDeep

from isobuild.exceptions import FetchError, MetadataParseError, ResolutionError
from isobuild.resolver.base import PinnedPackage, ResolveOptions
from isobuild.resolver.providers import BuildProvider
from isobuild.resolver.reporters import LockReporter
from isobuild.termui import logger

if TYPE_CHECKING:
    from isobuild.models.markers import Pep508EnvMarkers, WheelTags
    from isobuild.models.requirements import Requirement
    from isobuild.resolver.base import ArtifactStore


def _format_impossible(err: ResolutionImpossible) -> str:
    lines = ["Unable to find a resolution that satisfies the following requirements:"]
    for info in err.causes:
        parent = f" (from {info.parent.name} {info.parent.version})" if info.parent else ""
        lines.append(f"  {info.requirement.as_line()}{parent}")
    return "\n".join(lines)


def _do_resolve(
    provider: BuildProvider, requirements: list[Requirement], max_rounds: int
) -> list[PinnedPackage]:
    resolver = Resolver(provider, LockReporter())
    try:
        result = resolver.resolve(requirements, max_rounds=max_rounds)
    except ResolutionImpossible as e:
        raise ResolutionError(requirements, _format_impossible(e)) from e
    except ResolutionTooDeep as e:
        raise ResolutionError(requirements, f"Resolution too deep after {max_rounds} rounds") from e
    except (FetchError, MetadataParseError) as e:
        raise ResolutionError(requirements, str(e)) from e
    # Candidates with extras always depend on their base candidate, so the base ones cover everything.
    return [
        PinnedPackage(candidate.name, candidate.version, candidate.artifacts)
        for _, candidate in sorted(result.mapping.items())
        if not candidate.extras
    ]


async def resolve(
    package_db: ArtifactStore,
    requirements: Iterable[Requirement],
    env_markers: Pep508EnvMarkers,
    wheel_tags: WheelTags | None,
    locked_packages: Mapping[str, PinnedPackage] | None = None,
    favored_packages: Mapping[str, PinnedPackage] | None = None,
    options: ResolveOptions | None = None,
) -> list[PinnedPackage]:
    """Resolve the requirements into a set of pinned packages installable as wheels.

    Args:
        package_db: the artifact store to look for packages in
        requirements: the top level requirements, those not applying to ``env_markers`` are dropped
        env_markers: the PEP 508 environment to evaluate markers against
        wheel_tags: only wheels compatible with these tags are considered, if given
        locked_packages: packages that must be pinned to the given version
        favored_packages: packages whose given version is tried first
        options: the resolution options

    Raises:
        ResolutionError: if no consistent set of packages satisfies the requirements
    """
    options = options or ResolveOptions()
    reqs = [r for r in requirements if r.evaluate_marker(env_markers)]
    if not reqs:
        return []
    provider = BuildProvider(
        package_db,
        env_markers,
        wheel_tags,
        locked_packages or {},
        favored_packages or {},
        options,
    )
    logger.debug("Resolving requirements: %s", ", ".join(r.as_line() for r in reqs))
    return await asyncio.to_thread(_do_resolve, provider, reqs, options.max_rounds)
