from __future__ import annotations

import dataclasses
import os
import subprocess
import sys
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING

from isobuild.exceptions import InstallationError
from isobuild.models.in_process import get_sys_config_paths
from isobuild.termui import logger

if TYPE_CHECKING:
    from isobuild.installers import InstallOptions
    from isobuild.models.wheel import Wheel

IS_WIN = sys.platform == "win32"
BIN_DIR = "Scripts" if IS_WIN else "bin"


@dataclasses.dataclass(frozen=True)
class PythonLocation:
    """The interpreter a virtual environment is derived from"""

    executable: Path

    @classmethod
    def system(cls) -> PythonLocation:
        """The interpreter isobuild itself runs on"""
        return cls(Path(getattr(sys, "_base_executable", None) or sys.executable))

    @classmethod
    def custom(cls, executable: str | Path) -> PythonLocation:
        return cls(Path(executable))


class VEnv:
    """An isolated virtual environment without pip"""

    def __init__(self, location: Path, python: PythonLocation) -> None:
        self.location = location
        self.python = python

    def __repr__(self) -> str:
        return f"<VEnv {self.location}>"

    @classmethod
    def create(cls, location: str | Path, python: PythonLocation | None = None) -> VEnv:
        """Create a fresh virtual environment at ``location``."""
        location = Path(location)
        python = python or PythonLocation.system()
        cmd = [str(python.executable), "-m", "venv", "--without-pip", str(location)]
        logger.debug("Creating build venv: %s", cmd)
        try:
            subprocess.run(cmd, check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as e:
            raise InstallationError(f"Could not create a virtual environment at {location}:\n{e.stderr}") from e
        except OSError as e:
            raise InstallationError(f"Could not create a virtual environment at {location}: {e}") from e
        return cls(location, python)

    def python_executable(self) -> Path:
        return self.location / BIN_DIR / ("python.exe" if IS_WIN else "python")

    @property
    def scripts_dir(self) -> Path:
        return self.location / BIN_DIR

    @cached_property
    def paths(self) -> dict[str, str]:
        """The install scheme of the environment, like ``sysconfig.get_paths()``"""
        paths = get_sys_config_paths(str(self.python_executable()))
        paths["prefix"] = paths["data"]
        paths["headers"] = paths["include"]
        return paths

    @property
    def process_env(self) -> dict[str, str]:
        """Environment variables that activate the venv and isolate it from the user site."""
        env = os.environ.copy()
        for key in ("PYTHONPATH", "PYTHONHOME", "__PYVENV_LAUNCHER__"):
            env.pop(key, None)
        env.update(
            VIRTUAL_ENV=str(self.location),
            PYTHONNOUSERSITE="1",
            PATH=os.pathsep.join([str(self.scripts_dir), os.getenv("PATH", "")]),
        )
        return env

    def install_wheel(self, wheel: Wheel, options: InstallOptions | None = None) -> str:
        """Install the wheel into the environment and return its .dist-info path"""
        from isobuild.installers import install_wheel

        return install_wheel(wheel, self, options)

    def uninstall_dist(self, dist_info: str) -> None:
        """Remove the distribution installed at ``dist_info`` from the environment"""
        from isobuild.installers import uninstall_dist

        uninstall_dist(dist_info, self)
