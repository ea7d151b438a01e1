from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Mapping, Sequence

from isobuild.exceptions import BackendUnavailable, BuildError, BuildTimeout
from isobuild.termui import logger

#: Exit code of the bridge script when the backend can't be imported
BACKEND_UNAVAILABLE = 2

GET_REQUIRES_FOR_BUILD_WHEEL = "GetRequiresForBuildWheel"
PREPARE_METADATA_FOR_BUILD_WHEEL = "PrepareMetadataForBuildWheel"
BUILD_WHEEL = "BuildWheel"

#: Result files written by the bridge into the work dir
EXTRA_REQUIREMENTS_FILE = "extra_requirements.json"
METADATA_RESULT_FILE = "metadata_result.json"
BUILD_WHEEL_RESULT_FILE = "build_wheel_result.json"


def _tail(output: str, lines: int = 10) -> list[str]:
    return output.rstrip().splitlines()[-lines:]


def build_error(stage: str, proc: subprocess.CompletedProcess[str]) -> BuildError:
    """Get a build error with meaningful error message
    from the subprocess output.
    """
    output = _tail(proc.stderr or proc.stdout or "")
    if proc.returncode == BACKEND_UNAVAILABLE:
        return BackendUnavailable("\n".join(output), stage=stage, stderr=proc.stderr)
    errors: list[str] = []
    if output and output[-1].strip().startswith("ModuleNotFoundError"):
        package = output[-1].strip().split()[-1]
        errors.append(
            f"Module {package} is missing, please make sure it is specified in the "
            "'build-system.requires' section."
        )
    errors.extend(["Showing the last 10 lines of the build output:", *output])
    error_message = "\n".join(errors)
    return BuildError(f"Build backend raised error at stage {stage}: {error_message}", stage=stage, stderr=proc.stderr)


def run_bridge(
    cmd: Sequence[str],
    stage: str,
    cwd: str | Path,
    env: Mapping[str, str],
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run one bridge invocation to completion, capturing its output.

    The child is killed if it runs longer than ``timeout`` seconds.
    """
    logger.debug("Running build stage %s: %s", stage, cmd)
    try:
        proc = subprocess.run(
            list(cmd),
            cwd=cwd,
            env=dict(env),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr.decode("utf-8", "replace") if isinstance(e.stderr, bytes) else e.stderr
        raise BuildTimeout(
            f"Build stage {stage} did not finish within {timeout} seconds", stage=stage, stderr=stderr
        ) from None
    for stream in (proc.stdout, proc.stderr):
        for line in (stream or "").splitlines():
            logger.debug("  %s", line)
    if proc.returncode != 0:
        raise build_error(stage, proc)
    return proc
