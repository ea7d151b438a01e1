from __future__ import annotations

import asyncio
import base64
import hashlib
import io
import tarfile
import textwrap
import zipfile
from pathlib import Path
from typing import Callable, Iterable, Mapping

import pytest
from packaging.version import Version

from isobuild.index import ArtifactInfo
from isobuild.models.wheel import Wheel
from isobuild.resolver import resolve
from isobuild.utils import normalize_name

WHEEL_TAG = "py3-none-any"


def _record_hash(data: bytes) -> str:
    digest = base64.urlsafe_b64encode(hashlib.sha256(data).digest()).rstrip(b"=").decode()
    return f"sha256={digest}"


def build_wheel_file(
    directory: Path,
    name: str,
    version: str,
    requires_dist: Iterable[str] = (),
    files: Mapping[str, str] | None = None,
) -> Path:
    """Write a minimal but installable wheel and return its path"""
    dist_name = normalize_name(name).replace("-", "_")
    dist_info = f"{dist_name}-{version}.dist-info"
    metadata = f"Metadata-Version: 2.1\nName: {name}\nVersion: {version}\n"
    metadata += "".join(f"Requires-Dist: {req}\n" for req in requires_dist)
    contents = {
        f"{dist_name}/__init__.py": "",
        **(files or {}),
        f"{dist_info}/METADATA": metadata,
        f"{dist_info}/WHEEL": f"Wheel-Version: 1.0\nGenerator: tests\nRoot-Is-Purelib: true\nTag: {WHEEL_TAG}\n",
    }
    records = []
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{dist_name}-{version}-{WHEEL_TAG}.whl"
    with zipfile.ZipFile(path, "w") as zf:
        for filename, text in contents.items():
            data = text.encode("utf-8")
            zf.writestr(filename, data)
            records.append(f"{filename},{_record_hash(data)},{len(data)}")
        records.append(f"{dist_info}/RECORD,,")
        zf.writestr(f"{dist_info}/RECORD", "\n".join(records) + "\n")
    return path


def build_sdist_file(path: Path, files: Mapping[str, str | bytes]) -> Path:
    """Write a tar or tar.gz archive with the given members"""
    mode = "w:gz" if path.name.endswith(".tar.gz") else "w"
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, mode) as tf:
        for name, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tf.addfile(info, io.BytesIO(data))
    return path


def pkg_info(name: str, version: str, metadata_version: str = "2.1") -> str:
    return f"Metadata-Version: {metadata_version}\nName: {name}\nVersion: {version}\n"


class FakePackageDb:
    """An artifact store serving wheels written to a local directory"""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.packages: dict[str, dict[Version, list[ArtifactInfo]]] = {}
        self.fetched: list[str] = []

    def add(self, name: str, version: str, requires_dist: Iterable[str] = (), files: Mapping[str, str] | None = None):
        path = build_wheel_file(self.directory, name, version, requires_dist, files)
        artifact = ArtifactInfo(filename=path.name, url=path.as_uri())
        self.packages.setdefault(normalize_name(name), {})[Version(version)] = [artifact]
        return artifact

    def available_artifacts(self, name: str) -> dict[Version, list[ArtifactInfo]]:
        versions = self.packages.get(normalize_name(name), {})
        return dict(sorted(versions.items(), reverse=True))

    def get_wheel(self, artifact_info: ArtifactInfo) -> Wheel:
        self.fetched.append(artifact_info.filename)
        return Wheel.from_path(self.directory / artifact_info.filename)

    async def get_artifact(self, artifact_info: ArtifactInfo) -> Wheel:
        return await asyncio.to_thread(self.get_wheel, artifact_info)


@pytest.fixture
def package_db(tmp_path: Path) -> FakePackageDb:
    return FakePackageDb(tmp_path / "index")


@pytest.fixture
def make_sdist(tmp_path: Path) -> Callable[..., Path]:
    def factory(filename: str, files: Mapping[str, str | bytes]) -> Path:
        return build_sdist_file(tmp_path / "sdists" / filename, files)

    return factory


@pytest.fixture
def make_wheel(tmp_path: Path) -> Callable[..., Path]:
    def factory(name: str, version: str, requires_dist: Iterable[str] = (), **kwargs) -> Path:
        return build_wheel_file(tmp_path / "wheels", name, version, requires_dist, **kwargs)

    return factory


class RecordingResolve:
    """Wraps the real resolver and records every call"""

    def __init__(self) -> None:
        self.calls: list[dict] = []

    async def __call__(
        self,
        package_db,
        requirements,
        env_markers,
        wheel_tags,
        locked_packages=None,
        favored_packages=None,
        options=None,
    ):
        requirements = list(requirements)
        self.calls.append({"requirements": requirements, "favored": dict(favored_packages or {})})
        return await resolve(
            package_db, requirements, env_markers, wheel_tags, locked_packages, favored_packages, options
        )


@pytest.fixture
def recording_resolve() -> RecordingResolve:
    return RecordingResolve()


FAKE_BACKEND = textwrap.dedent(
    """
    import base64
    import hashlib
    import os
    import zipfile

    from email.parser import Parser


    def get_requires_for_build_wheel(config_settings=None):
        return list(EXTRA_REQUIRES)


    def _record(data):
        digest = base64.urlsafe_b64encode(hashlib.sha256(data).digest()).rstrip(b"=").decode()
        return "sha256=" + digest


    def build_wheel(wheel_directory, config_settings=None, metadata_directory=None):
        for module in EXTRA_REQUIRES:
            __import__(module.split(">")[0].split("=")[0].replace("-", "_"))
        with open("PKG-INFO", encoding="utf-8") as f:
            info = Parser().parse(f)
        name, version = info["Name"], info["Version"]
        dist_info = "{}-{}.dist-info".format(name, version)
        filename = "{}-{}-py3-none-any.whl".format(name, version)
        contents = {
            name + "/__init__.py": repr(config_settings),
            dist_info + "/METADATA": "Metadata-Version: 2.1\\nName: {}\\nVersion: {}\\n".format(name, version),
            dist_info + "/WHEEL": "Wheel-Version: 1.0\\nRoot-Is-Purelib: true\\nTag: py3-none-any\\n",
        }
        records = []
        with zipfile.ZipFile(os.path.join(wheel_directory, filename), "w") as zf:
            for path, text in contents.items():
                data = text.encode("utf-8")
                zf.writestr(path, data)
                records.append("{},{},{}".format(path, _record(data), len(data)))
            records.append(dist_info + "/RECORD,,")
            zf.writestr(dist_info + "/RECORD", "\\n".join(records) + "\\n")
        return filename
    """
)


def fake_backend_source(extra_requires: Iterable[str] = ()) -> str:
    """The source of a build backend that builds a wheel out of PKG-INFO"""
    return f"EXTRA_REQUIRES = {list(extra_requires)!r}\n" + FAKE_BACKEND


def fake_backend_pyproject(requires: Iterable[str] = ()) -> str:
    return textwrap.dedent(
        f"""
        [build-system]
        requires = {list(requires)!r}
        build-backend = "fake_backend"
        backend-path = ["backend"]
        """
    )
