from __future__ import annotations

import contextlib

import pytest

from isobuild.core import Core


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.setenv("ISOBUILD_CONFIG_FILE", str(tmp_path / "config.toml"))
    monkeypatch.setenv("ISOBUILD_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("ISOBUILD_CACHE_DIR", str(tmp_path / "cache"))
    return tmp_path / "config.toml"


@pytest.fixture
def isobuild(mocker):
    """Run the CLI and return the exit code"""

    def invoke(args, package_db=None):
        core = Core()
        if package_db is not None:
            mocker.patch.object(core, "create_package_db", return_value=contextlib.nullcontext(package_db))
        try:
            with core.exit_stack:
                core.main(args)
        except SystemExit as e:
            return e.code
        return 0

    return invoke
