from __future__ import annotations

import asyncio
import collections
import dataclasses
import platform
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Sequence

import httpx
import unearth
from unearth.evaluator import Evaluator, FormatControl, LinkMismatchError
from unearth.fetchers import PyPIClient

from isobuild.__version__ import __version__
from isobuild.exceptions import FetchError
from isobuild.models.markers import WheelTags
from isobuild.models.wheel import Wheel
from isobuild.termui import logger
from isobuild.utils import normalize_name, parse_version

if TYPE_CHECKING:
    from packaging.version import Version

MAX_RETRIES = 4


@dataclasses.dataclass(frozen=True)
class ArtifactInfo:
    """A downloadable distribution file of a package"""

    filename: str
    url: str
    hashes: tuple[tuple[str, str], ...] = ()
    requires_python: str | None = None
    yanked: bool = False

    @classmethod
    def from_link(cls, link: unearth.Link) -> ArtifactInfo:
        return cls(
            filename=link.filename,
            url=link.url_without_fragment,
            hashes=tuple(sorted((link.hashes or {}).items())),
            requires_python=link.requires_python,
            yanked=link.is_yanked,
        )

    @property
    def is_wheel(self) -> bool:
        return self.filename.endswith(".whl")

    def hash_options(self) -> dict[str, list[str]] | None:
        if not self.hashes:
            return None
        options: dict[str, list[str]] = collections.defaultdict(list)
        for name, value in self.hashes:
            options[name].append(value)
        return dict(options)


class IsobuildPyPIClient(PyPIClient):
    def __init__(self, *, timeout: float = 15, **kwargs: Any) -> None:
        from unearth.fetchers.sync import LocalFSTransport

        self._trusted_host_ports: set[tuple[str, int | None]] = set()
        mounts: dict[str, httpx.BaseTransport] = {"file://": LocalFSTransport()}
        mounts.update(kwargs.pop("mounts", None) or {})
        kwargs.setdefault("transport", httpx.HTTPTransport(trust_env=True, retries=MAX_RETRIES))
        httpx.Client.__init__(self, mounts=mounts, timeout=timeout, follow_redirects=True, **kwargs)
        self.headers["User-Agent"] = self._make_user_agent()

    def _make_user_agent(self) -> str:
        return (
            f"isobuild/{__version__} {platform.python_implementation()}/{platform.python_version()} "
            f"{platform.system()}/{platform.release()}"
        )


class TagsEvaluator(Evaluator):
    def __init__(self, *args: Any, wheel_tags: WheelTags, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.wheel_tags = wheel_tags

    def check_wheel_tags(self, filename: str) -> None:
        if not self.wheel_tags.is_compatible(filename):
            raise LinkMismatchError(f"The wheel file {filename} is not compatible with the build environment.")


class BuildPackageFinder(unearth.PackageFinder):
    """A finder that only yields wheels installable with the given tags"""

    def __init__(self, session: PyPIClient | None = None, *, wheel_tags: WheelTags, **kwargs: Any) -> None:
        kwargs.setdefault("only_binary", [":all:"])
        super().__init__(session, **kwargs)
        self.wheel_tags = wheel_tags

    def build_evaluator(self, package_name: str, allow_yanked: bool = False) -> Evaluator:
        format_control = FormatControl(no_binary=self.no_binary, only_binary=self.only_binary)
        return TagsEvaluator(
            package_name=package_name,
            target_python=self.target_python,
            allow_yanked=allow_yanked,
            format_control=format_control,
            exclude_newer_than=self.exclude_newer_than,
            wheel_tags=self.wheel_tags,
        )


class PackageDb:
    """The artifact store: finds wheels on package indexes and caches the downloads.

    The blocking methods are used from worker threads by the resolver, the
    coroutine :meth:`get_artifact` is the entry point for the build orchestrator.
    """

    def __init__(
        self,
        index_urls: Sequence[str],
        cache_dir: str | Path,
        *,
        find_links: Iterable[str] = (),
        wheel_tags: WheelTags | None = None,
        timeout: float = 15,
        session: PyPIClient | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.wheel_tags = wheel_tags or WheelTags.from_env()
        self.session = session or IsobuildPyPIClient(timeout=timeout)
        self._finder = BuildPackageFinder(session=self.session, wheel_tags=self.wheel_tags)
        self._finder.sources.clear()
        for url in index_urls:
            self._finder.add_index_url(url)
        for url in find_links:
            self._finder.add_find_links(url)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> PackageDb:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def wheels_dir(self) -> Path:
        return self.cache_dir / "wheels"

    def available_artifacts(self, name: str) -> dict[Version, list[ArtifactInfo]]:
        """Return the wheels of a package grouped by version, newest version first.

        Within a version, the artifacts most specific to the environment come first.
        """
        result: dict[Version, list[ArtifactInfo]] = {}
        packages = self._finder.find_all_packages(normalize_name(name))
        for package in packages:
            if package.version is None:
                continue
            result.setdefault(parse_version(package.version), []).append(ArtifactInfo.from_link(package.link))
        for artifacts in result.values():
            artifacts.sort(key=self._artifact_priority)
        return dict(sorted(result.items(), key=lambda item: item[0], reverse=True))

    def _artifact_priority(self, artifact: ArtifactInfo) -> tuple[int, int]:
        compatibility = self.wheel_tags.compatibility(artifact.filename)
        return (int(artifact.yanked), compatibility if compatibility is not None else len(self.wheel_tags))

    def _lock_for(self, filename: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(filename, threading.Lock())

    def get_wheel(self, artifact_info: ArtifactInfo) -> Wheel:
        """Download the wheel into the cache, unless it is already there, and open it."""
        if not artifact_info.is_wheel:
            raise FetchError(f"{artifact_info.filename} is not a wheel")
        target = self.wheels_dir / artifact_info.filename
        with self._lock_for(artifact_info.filename):
            if not target.exists():
                self.wheels_dir.mkdir(parents=True, exist_ok=True)
                logger.info("Downloading %s", artifact_info.url)
                try:
                    downloaded = self._finder.download_and_unpack(
                        unearth.Link(artifact_info.url),
                        self.wheels_dir,
                        self.wheels_dir,
                        artifact_info.hash_options(),
                    )
                except (unearth.UnpackError, httpx.HTTPError) as e:
                    raise FetchError(f"Could not fetch {artifact_info.filename}: {e}") from e
                target = Path(downloaded)
            else:
                logger.debug("Using cached wheel %s", target)
        return Wheel.from_path(target)

    async def get_artifact(self, artifact_info: ArtifactInfo) -> Wheel:
        return await asyncio.to_thread(self.get_wheel, artifact_info)
