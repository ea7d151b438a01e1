"""
Utility functions
"""

from __future__ import annotations

import functools
import os
import re
from pathlib import Path

from packaging.version import Version


@functools.lru_cache(maxsize=1024)
def parse_version(version: str) -> Version:
    return Version(version)


def normalize_name(name: str, lowercase: bool = True) -> str:
    name = re.sub(r"[-_.]+", "-", name)
    return name.lower() if lowercase else name


def is_path_relative_to(path: str | Path, other: str | Path) -> bool:
    try:
        Path(path).relative_to(other)
    except ValueError:
        return False
    return True


def split_archive_suffix(filename: str) -> tuple[str, str]:
    """Split an archive filename into its stem and its (possibly double) suffix."""
    lowered = filename.lower()
    for suffix in (".tar.gz", ".tar.bz2", ".tar.xz"):
        if lowered.endswith(suffix):
            return filename[: -len(suffix)], filename[-len(suffix) :]
    stem, ext = os.path.splitext(filename)
    return stem, ext


def guess_sdist_name(filename: str) -> str:
    """Guess the normalized project name of an sdist filename.

    Versions never contain a dash, so everything before the last one is the name.
    """
    stem, _ = split_archive_suffix(os.path.basename(filename))
    name = stem.rpartition("-")[0] or stem
    return normalize_name(name)
