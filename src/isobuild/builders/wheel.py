from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

from isobuild.builders.base import (
    BUILD_WHEEL,
    BUILD_WHEEL_RESULT_FILE,
    METADATA_RESULT_FILE,
    PREPARE_METADATA_FOR_BUILD_WHEEL,
)
from isobuild.builders.environment import BuildEnvironment
from isobuild.exceptions import BuildError
from isobuild.models.metadata import CoreMetadata
from isobuild.models.wheel import Wheel
from isobuild.resolver import ResolveOptions, resolve
from isobuild.signals import post_build
from isobuild.termui import logger

if TYPE_CHECKING:
    from isobuild.environments import PythonLocation
    from isobuild.models.markers import Pep508EnvMarkers, WheelTags
    from isobuild.models.sdist import SDist
    from isobuild.resolver.base import ArtifactStore, ResolveFunc


def _read_result(env: BuildEnvironment, filename: str, stage: str) -> dict[str, Any]:
    try:
        result = json.loads((env.work_dir / filename).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise BuildError(f"Could not read the result of {stage}: {e}", stage=stage) from e
    if not isinstance(result, dict):
        raise BuildError(f"Unexpected result of {stage}: {result!r}", stage=stage)
    return result


class WheelBuilder:
    """Build wheels and get metadata out of source distributions.

    A build environment is prepared once per sdist and shared by the
    metadata preparation and the wheel build that follows it.
    """

    def __init__(
        self,
        package_db: ArtifactStore,
        env_markers: Pep508EnvMarkers,
        wheel_tags: WheelTags | None = None,
        resolve_options: ResolveOptions | None = None,
        *,
        resolve_func: ResolveFunc = resolve,
        python: PythonLocation | None = None,
        config_settings: Mapping[str, Any] | None = None,
        build_timeout: float | None = None,
        keep_env: bool = False,
    ) -> None:
        self.package_db = package_db
        self.env_markers = env_markers
        self.wheel_tags = wheel_tags
        self.resolve_options = resolve_options or ResolveOptions()
        self.resolve_func = resolve_func
        self.python = python
        self.config_settings = config_settings
        self.build_timeout = build_timeout
        self.keep_env = keep_env
        self._envs: dict[str, BuildEnvironment] = {}
        self._built: dict[str, Path] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, sdist: SDist) -> asyncio.Lock:
        return self._locks.setdefault(str(sdist.name), asyncio.Lock())

    async def _get_environment(self, sdist: SDist) -> BuildEnvironment:
        key = str(sdist.name)
        if key in self._envs:
            return self._envs[key]
        env = await BuildEnvironment.setup(
            sdist,
            self.package_db,
            self.env_markers,
            self.wheel_tags,
            self.resolve_options,
            resolve_func=self.resolve_func,
            python=self.python,
            config_settings=self.config_settings,
            timeout=self.build_timeout,
        )
        try:
            await asyncio.to_thread(env.install_build_files, sdist)
            extra_requirements = await asyncio.to_thread(env.get_extra_requirements)
            await env.install_extra_requirements(extra_requirements)
        except BaseException:
            env.cleanup()
            raise
        self._envs[key] = env
        return env

    def _release_environment(self, sdist: SDist) -> None:
        key = str(sdist.name)
        env = self._envs.pop(key, None)
        self._built.pop(key, None)
        if env is None:
            return
        if self.keep_env:
            logger.info("Build environment of %s is kept at %s", sdist.name, env.persist())
        else:
            env.cleanup()

    async def _build(self, sdist: SDist, env: BuildEnvironment) -> Path:
        key = str(sdist.name)
        if key in self._built:
            return self._built[key]
        await asyncio.to_thread(env.run_command, BUILD_WHEEL)
        filename = _read_result(env, BUILD_WHEEL_RESULT_FILE, BUILD_WHEEL).get("wheel")
        if not isinstance(filename, str):
            raise BuildError(f"The backend did not report a wheel for {sdist.name}", stage=BUILD_WHEEL)
        wheel_path = env.work_dir / "wheel" / filename
        if not wheel_path.is_file():
            raise BuildError(f"The backend reported {filename} but it doesn't exist", stage=BUILD_WHEEL)
        self._built[key] = wheel_path
        return wheel_path

    async def get_sdist_metadata(self, sdist: SDist) -> tuple[bytes, CoreMetadata]:
        """Get the core metadata of the sdist.

        Static metadata (PEP 643) is read straight from PKG-INFO, otherwise the
        backend prepares it, and a wheel is built if the backend can't.
        """
        static = await asyncio.to_thread(sdist.pep643_metadata)
        if static is not None:
            logger.debug("Using the static metadata of %s", sdist.name)
            return static

        async with self._lock_for(sdist):
            env = await self._get_environment(sdist)
            await asyncio.to_thread(env.run_command, PREPARE_METADATA_FOR_BUILD_WHEEL)
            dist_info = _read_result(env, METADATA_RESULT_FILE, PREPARE_METADATA_FOR_BUILD_WHEEL).get("dist_info")
            if dist_info is None:
                logger.debug("The backend of %s can't prepare metadata, building a wheel instead", sdist.name)
                wheel_path = await self._build(sdist, env)
                return await asyncio.to_thread(Wheel.from_path(wheel_path).metadata)
            metadata_file = env.work_dir / "metadata" / dist_info / "METADATA"
            try:
                data = await asyncio.to_thread(metadata_file.read_bytes)
            except OSError as e:
                raise BuildError(
                    f"Could not read the prepared metadata: {e}", stage=PREPARE_METADATA_FOR_BUILD_WHEEL
                ) from e
            return data, CoreMetadata.from_bytes(data)

    async def build_wheel(self, sdist: SDist, dest: str | Path) -> Wheel:
        """Build a wheel from the sdist and move it into ``dest``.

        The build environment of the sdist is released afterwards, whether the
        build succeeds or not.
        """
        dest = Path(dest)
        async with self._lock_for(sdist):
            try:
                env = await self._get_environment(sdist)
                wheel_path = await self._build(sdist, env)
                wheel = Wheel.from_path(wheel_path, sdist.name.normalized_name)
                dest.mkdir(parents=True, exist_ok=True)
                target = dest / wheel_path.name
                await asyncio.to_thread(shutil.move, str(wheel_path), str(target))
            finally:
                self._release_environment(sdist)
        wheel = Wheel.from_path(target, wheel.name)
        logger.info("Built %s", wheel.filename)
        post_build.send(sdist, wheel=target)
        return wheel

    def close(self) -> None:
        """Release the build environments that are still cached."""
        for key, env in list(self._envs.items()):
            if self.keep_env:
                logger.info("Build environment of %s is kept at %s", key, env.persist())
            else:
                env.cleanup()
        self._envs.clear()
        self._built.clear()

    def __enter__(self) -> WheelBuilder:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
