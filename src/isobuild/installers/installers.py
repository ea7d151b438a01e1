from __future__ import annotations

import dataclasses
import os
import zipfile
from functools import cached_property
from typing import TYPE_CHECKING

from installer import install as _install
from installer._core import _process_WHEEL_file
from installer.destinations import SchemeDictionaryDestination, WheelDestination
from installer.exceptions import InstallerError, InvalidWheelSource
from installer.sources import WheelFile as _WheelFile
from installer.sources import WheelSource

from isobuild.exceptions import InstallationError
from isobuild.termui import logger

if TYPE_CHECKING:
    from isobuild.environments import VEnv
    from isobuild.models.wheel import Wheel


class WheelFile(_WheelFile):
    @cached_property
    def dist_info_dir(self) -> str:
        namelist = self._zipfile.namelist()
        try:
            return next(name.split("/")[0] for name in namelist if name.split("/")[0].endswith(".dist-info"))
        except StopIteration:  # pragma: no cover
            canonical_name = super().dist_info_dir
            raise InvalidWheelSource(f"The wheel doesn't contain metadata {canonical_name!r}") from None


@dataclasses.dataclass(frozen=True)
class InstallOptions:
    """Options controlling how a wheel is unpacked into an environment

    Args:
        installer (str|None): the name written to the INSTALLER file, omitted if None
        compile_bytecode (bool): whether to byte-compile the installed modules
    """

    installer: str | None = None
    compile_bytecode: bool = False


def install_wheel(wheel: Wheel, environment: VEnv, options: InstallOptions | None = None) -> str:
    """Install a wheel into the virtual environment.

    Return the .dist-info path
    """
    options = options or InstallOptions()
    additional_metadata: dict[str, bytes] = {}
    if options.installer is not None:
        additional_metadata["INSTALLER"] = options.installer.encode()

    destination = SchemeDictionaryDestination(
        scheme_dict=environment.paths,
        interpreter=str(environment.python_executable()),
        script_kind="win-amd64" if os.name == "nt" else "posix",
        bytecode_optimization_levels=(0,) if options.compile_bytecode else (),
    )
    logger.debug("Installing %s into %s", wheel.filename, environment.location)
    try:
        with WheelFile.open(wheel.path) as source:
            return install(source, destination=destination, additional_metadata=additional_metadata)
    except (InstallerError, zipfile.BadZipFile, ValueError) as e:
        raise InstallationError(f"Could not install {wheel.filename}: {e}") from e


def install(
    source: WheelSource, destination: WheelDestination, additional_metadata: dict[str, bytes] | None = None
) -> str:
    """A lower level installation method that is copied from installer
    but is controlled by extra parameters.

    Return the .dist-info path
    """
    _install(source, destination, additional_metadata=additional_metadata or {})
    root_scheme = _process_WHEEL_file(source)
    return os.path.join(destination.scheme_dict[root_scheme], source.dist_info_dir)
