from __future__ import annotations

import glob
import os
from typing import TYPE_CHECKING, Iterable

from isobuild.compat import importlib_metadata
from isobuild.exceptions import InstallationError
from isobuild.termui import logger
from isobuild.utils import is_path_relative_to

if TYPE_CHECKING:
    from isobuild.environments import VEnv


def _cache_file_from_source(py_file: str) -> Iterable[str]:
    parent, base = os.path.split(py_file)
    yield from glob.glob(os.path.join(parent, "__pycache__", base[:-3] + ".*.pyc"))


def _collect_paths(dist_info: str) -> set[str]:
    dist = importlib_metadata.Distribution.at(dist_info)
    if dist.files is None:
        raise InstallationError(f"{dist_info} has no RECORD, can't remove it")
    paths: set[str] = set()
    for file in dist.files:
        location = os.path.realpath(str(dist.locate_file(file)))
        paths.add(location)
        if location.endswith(".py"):
            paths.update(os.path.realpath(p) for p in _cache_file_from_source(location))
    return paths


def uninstall_dist(dist_info: str, environment: VEnv) -> None:
    """Remove an installed distribution from the environment.

    Files are taken from the RECORD of ``dist_info``. Directories left empty
    are removed too, except the install scheme directories themselves.
    """
    root = os.path.realpath(environment.location)
    keep = {os.path.realpath(p) for p in environment.paths.values()} | {root}
    paths = _collect_paths(dist_info)
    parents = {os.path.realpath(dist_info)}
    logger.debug("Removing %s from %s", os.path.basename(dist_info), environment.location)
    try:
        for path in sorted(paths):
            if not is_path_relative_to(path, root):
                logger.debug("%s is outside of the environment, skip", path)
                continue
            if os.path.isfile(path) or os.path.islink(path):
                os.unlink(path)
                parents.add(os.path.dirname(path))
        for directory in sorted(parents, key=len, reverse=True):
            while directory not in keep and is_path_relative_to(directory, root):
                try:
                    os.rmdir(directory)
                except OSError:
                    break
                directory = os.path.dirname(directory)
    except OSError as e:
        raise InstallationError(f"Could not remove {os.path.basename(dist_info)}: {e}") from e
