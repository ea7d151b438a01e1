"""
A collection of scripts that are executed by another interpreter via a subprocess call.
"""

from __future__ import annotations

import contextlib
import json
import os
import subprocess
from typing import Generator

from isobuild.compat import resources_path, resources_read_text

#: The file name the bridge script is written to inside a build workspace
BUILD_FRONTEND = "build_frontend.py"


@contextlib.contextmanager
def _in_process_script(name: str) -> Generator[str, None, None]:
    with resources_path(__name__, name) as script:
        yield str(script)


def get_sys_config_paths(executable: str, vars: dict[str, str] | None = None) -> dict[str, str]:
    """Return the sysconfig.get_paths() result for the python interpreter"""
    env = os.environ.copy()
    env.pop("__PYVENV_LAUNCHER__", None)
    if vars is not None:
        env["_SYSCONFIG_VARS"] = json.dumps(vars)

    with _in_process_script("sysconfig_get_paths.py") as script:
        cmd = [executable, "-Es", script]
        return json.loads(subprocess.check_output(cmd, env=env))


def read_build_frontend() -> str:
    """The source of the bridge script exposing backend hooks as CLI stages"""
    return resources_read_text(__name__, BUILD_FRONTEND)
