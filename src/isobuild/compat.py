from __future__ import annotations

import importlib.resources
import sys
from pathlib import Path
from typing import ContextManager

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


if sys.version_info >= (3, 10):
    import importlib.metadata as importlib_metadata
else:
    import importlib_metadata


def resources_read_text(package: str, resource: str, encoding: str = "utf-8", errors: str = "strict") -> str:
    with (importlib.resources.files(package) / resource).open("r", encoding=encoding, errors=errors) as f:
        return f.read()


def resources_path(package: str, resource: str) -> ContextManager[Path]:
    return importlib.resources.as_file(importlib.resources.files(package) / resource)


__all__ = ["tomllib", "importlib_metadata", "resources_read_text", "resources_path"]
