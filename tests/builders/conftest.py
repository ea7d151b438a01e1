from __future__ import annotations

from typing import Iterable

import pytest

from tests.conftest import fake_backend_pyproject, fake_backend_source, pkg_info


@pytest.fixture
def project_sdist(make_sdist):
    """Create an sdist built by the fake backend shipped inside it"""

    def factory(
        name: str = "demo",
        version: str = "1.0",
        requires: Iterable[str] = ("base-dep",),
        extra_requires: Iterable[str] = (),
        backend_extra: str = "",
        top_dir: str | None = None,
        suffix: str = ".tar.gz",
    ):
        top_dir = top_dir or f"{name}-{version}"
        return make_sdist(
            f"{name}-{version}{suffix}",
            {
                f"{top_dir}/PKG-INFO": pkg_info(name, version),
                f"{top_dir}/pyproject.toml": fake_backend_pyproject(requires),
                f"{top_dir}/backend/fake_backend.py": fake_backend_source(extra_requires) + backend_extra,
            },
        )

    return factory


@pytest.fixture
def build_deps(package_db):
    package_db.add("base-dep", "1.0")
    package_db.add("helper", "1.0", files={"helper/__init__.py": "VALUE = 'helped'\n"})
    return package_db
