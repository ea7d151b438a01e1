from __future__ import annotations

import asyncio
import json
import os
import shutil
import subprocess
import tempfile
import weakref
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from isobuild.builders.base import EXTRA_REQUIREMENTS_FILE, GET_REQUIRES_FOR_BUILD_WHEEL, run_bridge
from isobuild.environments import PythonLocation, VEnv
from isobuild.exceptions import (
    ArchiveError,
    BuildError,
    FetchError,
    SDistError,
)
from isobuild.installers import InstallOptions
from isobuild.models.build_system import BuildSystem, build_requirements
from isobuild.models.in_process import BUILD_FRONTEND, read_build_frontend
from isobuild.models.requirements import Requirement, parse_requirement
from isobuild.resolver import PinnedPackage, ResolveOptions, resolve
from isobuild.signals import build_env_ready, build_system_defaulted
from isobuild.termui import logger
from isobuild.utils import is_path_relative_to

if TYPE_CHECKING:
    from isobuild.models.markers import Pep508EnvMarkers, WheelTags
    from isobuild.models.sdist import SDist
    from isobuild.resolver.base import ArtifactStore, ResolveFunc

VENV_DIR = "venv"
INSTALL_OPTIONS = InstallOptions(installer="isobuild")


class BuildEnvironment:
    """An isolated environment for building one source distribution.

    The environment owns a temporary workspace holding the virtual environment,
    the unpacked project and the bridge script. The workspace is removed when
    the handle is garbage collected, unless :meth:`persist` is called.
    Never share one instance between concurrent builds.
    """

    def __init__(
        self,
        work_dir: str | Path,
        package_db: ArtifactStore,
        env_markers: Pep508EnvMarkers,
        wheel_tags: WheelTags | None = None,
        resolve_options: ResolveOptions | None = None,
        *,
        resolve_func: ResolveFunc = resolve,
        config_settings: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> None:
        self.work_dir = Path(work_dir)
        self._finalizer = weakref.finalize(self, shutil.rmtree, str(self.work_dir), ignore_errors=True)
        self.package_db = package_db
        self.env_markers = env_markers
        self.wheel_tags = wheel_tags
        self.resolve_options = resolve_options or ResolveOptions()
        self.resolve_func = resolve_func
        self.config_settings = dict(config_settings) if config_settings else None
        self.timeout = timeout

        self.package_dir = self.work_dir
        self.build_system = BuildSystem()
        self.build_requirements: list[Requirement] = []
        self.resolved_wheels: list[PinnedPackage] = []
        self.venv: VEnv | None = None
        #: name -> (package, .dist-info path) of what is installed in the venv
        self._installed: dict[str, tuple[PinnedPackage, str]] = {}

    def __repr__(self) -> str:
        return f"<BuildEnvironment {self.work_dir}>"

    @property
    def entry_point(self) -> str:
        return self.build_system.entry_point

    @classmethod
    async def setup(
        cls,
        sdist: SDist,
        package_db: ArtifactStore,
        env_markers: Pep508EnvMarkers,
        wheel_tags: WheelTags | None = None,
        resolve_options: ResolveOptions | None = None,
        *,
        resolve_func: ResolveFunc = resolve,
        python: PythonLocation | None = None,
        config_settings: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> BuildEnvironment:
        """Create the workspace and install the build requirements of the sdist into a fresh venv.

        A missing or invalid build-system declaration falls back to the legacy
        setuptools backend instead of failing.

        Raises:
            ResolutionError: if the build requirements can't be resolved
            FetchError: if an artifact can't be downloaded
            InstallationError: if the venv can't be created or a wheel can't be installed
        """
        work_dir = tempfile.mkdtemp(prefix="isobuild-build-")
        env = cls(
            work_dir,
            package_db,
            env_markers,
            wheel_tags,
            resolve_options,
            resolve_func=resolve_func,
            config_settings=config_settings,
            timeout=timeout,
        )
        logger.info("Preparing isolated build environment for %s at %s", sdist.name, work_dir)
        try:
            await env._setup(sdist, python)
        except BaseException:
            env.cleanup()
            raise
        return env

    async def _setup(self, sdist: SDist, python: PythonLocation | None) -> None:
        venv_dir = self.work_dir / VENV_DIR
        venv_dir.mkdir()
        self.venv = await asyncio.to_thread(VEnv.create, venv_dir, python or PythonLocation.system())

        try:
            self.build_system = await asyncio.to_thread(sdist.read_build_info)
        except (SDistError, ArchiveError, OSError) as e:
            logger.warning("Using the default build system for %s: %s", sdist.name, e)
            build_system_defaulted.send(sdist, error=e)
            self.build_system = BuildSystem()
        self.build_requirements = build_requirements(self.build_system)
        self.package_dir = self.work_dir / sdist.name.package_dir_name

        pinned = await self.resolve_func(
            self.package_db,
            self.build_requirements,
            self.env_markers,
            self.wheel_tags,
            None,
            None,
            self.resolve_options,
        )
        await self._install_packages(pinned)
        self.resolved_wheels = list(pinned)
        build_env_ready.send(self)

    async def _install_packages(self, packages: Iterable[PinnedPackage]) -> None:
        assert self.venv is not None
        for package in packages:
            if not package.artifacts:
                raise FetchError(f"No artifact is available for {package}")
            wheel = await self.package_db.get_artifact(package.artifacts[0])
            dist_info = await asyncio.to_thread(self.venv.install_wheel, wheel, INSTALL_OPTIONS)
            self._installed[package.name] = (package, dist_info)
            logger.debug("Installed %s into the build environment", package)

    async def _uninstall_packages(self, packages: Iterable[PinnedPackage]) -> None:
        assert self.venv is not None
        for package in packages:
            _, dist_info = self._installed.pop(package.name)
            await asyncio.to_thread(self.venv.uninstall_dist, dist_info)
            logger.debug("Removed %s from the build environment", package)

    def install_build_files(self, sdist: SDist) -> None:
        """Unpack the sdist into the workspace and write the bridge script next to it."""
        sdist.extract_to(self.work_dir)
        (self.work_dir / BUILD_FRONTEND).write_text(read_build_frontend(), encoding="utf-8")
        if not self.package_dir.is_dir():
            candidates = [
                p for p in self.work_dir.iterdir() if p.is_dir() and p.name != VENV_DIR and not p.name.startswith(".")
            ]
            if len(candidates) != 1:
                raise BuildError(f"Could not find the project directory {self.package_dir.name} in {sdist.name}")
            logger.debug("%s not found in the archive, using %s", self.package_dir.name, candidates[0].name)
            self.package_dir = candidates[0]

    def _backend_path(self) -> str | None:
        if not self.build_system.backend_path:
            return None
        paths: list[str] = []
        for entry in self.build_system.backend_path:
            path = (self.package_dir / entry).resolve()
            if not is_path_relative_to(path, self.package_dir.resolve()):
                raise BuildError(f"backend-path {entry!r} points outside of the project directory")
            paths.append(str(path))
        return os.pathsep.join(paths)

    def _process_env(self) -> dict[str, str]:
        assert self.venv is not None
        env = self.venv.process_env
        env.pop("ISOBUILD_BACKEND_PATH", None)
        env.pop("ISOBUILD_CONFIG_SETTINGS", None)
        backend_path = self._backend_path()
        if backend_path:
            env["ISOBUILD_BACKEND_PATH"] = backend_path
        if self.config_settings:
            env["ISOBUILD_CONFIG_SETTINGS"] = json.dumps(self.config_settings)
        return env

    def run_command(self, stage: str) -> subprocess.CompletedProcess[str]:
        """Invoke the bridge script with the given stage, blocking until it exits.

        Raises:
            BuildError: if the bridge exits with a non-zero code
            BuildTimeout: if it does not finish in time
        """
        if self.venv is None:
            raise BuildError("The build environment is not set up", stage=stage)
        cmd = [
            str(self.venv.python_executable()),
            str(self.work_dir / BUILD_FRONTEND),
            str(self.work_dir),
            self.entry_point,
            stage,
        ]
        return run_bridge(cmd, stage, cwd=self.package_dir, env=self._process_env(), timeout=self.timeout)

    def get_extra_requirements(self) -> set[Requirement]:
        """Ask the backend for the requirements it needs to build a wheel.

        Raises:
            RequirementError: if the backend reports an invalid requirement
        """
        self.run_command(GET_REQUIRES_FOR_BUILD_WHEEL)
        result_file = self.work_dir / EXTRA_REQUIREMENTS_FILE
        try:
            requires = json.loads(result_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise BuildError(
                f"Could not read the extra requirements: {e}", stage=GET_REQUIRES_FOR_BUILD_WHEEL
            ) from e
        if not isinstance(requires, list) or not all(isinstance(r, str) for r in requires):
            raise BuildError(
                f"The backend returned invalid extra requirements: {requires!r}", stage=GET_REQUIRES_FOR_BUILD_WHEEL
            )
        return {parse_requirement(r) for r in requires}

    async def install_extra_requirements(self, extra_requirements: Iterable[Requirement]) -> list[PinnedPackage]:
        """Install the requirements reported by the backend on top of the build requirements.

        Packages the second resolve pins to another version replace the
        installed ones. Return the newly installed packages.
        """
        extra = set(extra_requirements)
        original = set(self.build_requirements)
        combined = original | extra
        if not extra or len(combined) == len(original):
            return []
        logger.info("Installing extra build requirements: %s", ", ".join(sorted(r.as_line() for r in extra - original)))
        favored = {p.name: p for p in self.resolved_wheels}
        pinned = await self.resolve_func(
            self.package_db,
            sorted(combined),
            self.env_markers,
            self.wheel_tags,
            None,
            favored,
            self.resolve_options,
        )
        new_packages: list[PinnedPackage] = []
        stale_packages: list[PinnedPackage] = []
        for package in pinned:
            if package in self.resolved_wheels:
                continue
            if package.name in self._installed:
                stale, _ = self._installed[package.name]
                logger.info("Replacing %s with %s in the build environment", stale, package)
                stale_packages.append(stale)
            new_packages.append(package)
        await self._uninstall_packages(stale_packages)
        self.resolved_wheels = [p for p in self.resolved_wheels if p not in stale_packages]
        await self._install_packages(new_packages)
        self.resolved_wheels.extend(new_packages)
        return new_packages

    def persist(self) -> Path:
        """Keep the workspace on disk after the handle is gone and return its path."""
        self._finalizer.detach()
        return self.work_dir

    def cleanup(self) -> None:
        """Remove the workspace now."""
        self._finalizer()

    def __enter__(self) -> BuildEnvironment:
        return self

    def __exit__(self, *args: Any) -> None:
        self.cleanup()
