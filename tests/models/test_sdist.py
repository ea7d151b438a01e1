from __future__ import annotations

import io
import tarfile

import pytest
from packaging.version import Version

from isobuild.exceptions import (
    ArchiveError,
    BuildSystemNotFound,
    BuildSystemParseError,
    InvalidFilename,
    MetadataParseError,
    NoPkgInfoFound,
    NoPyProjectTomlFound,
    UnpackError,
    UnsupportedFormat,
)
from isobuild.models.sdist import SDist, SDistFilename, SDistFormat
from tests.conftest import pkg_info

RICH_PYPROJECT = """\
[build-system]
requires = ["poetry-core >=1.0.0"]
build-backend = "poetry.core.masonry.api"
"""


@pytest.mark.parametrize(
    "suffix,expected",
    [
        (".tar.gz", SDistFormat.TAR_GZ),
        (".tar", SDistFormat.TAR),
        (".TAR.GZ", SDistFormat.TAR_GZ),
        (".zip", SDistFormat.OTHER),
        (".tgz", SDistFormat.OTHER),
        (".tar.bz2", SDistFormat.OTHER),
        (".tar.xz", SDistFormat.OTHER),
        (".whl", None),
        (".gz", None),
    ],
)
def test_sdist_format_from_suffix(suffix, expected):
    assert SDistFormat.from_suffix(suffix) is expected


@pytest.mark.parametrize(
    "filename,name,distribution,version,fmt",
    [
        ("rich-13.6.0.tar.gz", "rich", "rich", "13.6.0", SDistFormat.TAR_GZ),
        ("foo-bar-1.0.tar", "foo-bar", "foo-bar", "1.0", SDistFormat.TAR),
        ("Foo_Bar-2.0rc1.tar.gz", "foo-bar", "Foo_Bar", "2.0rc1", SDistFormat.TAR_GZ),
        ("demo-0.1.zip", "demo", "demo", "0.1", SDistFormat.OTHER),
    ],
)
def test_parse_sdist_filename(filename, name, distribution, version, fmt):
    parsed = SDistFilename.from_filename(filename, name)
    assert parsed.distribution == distribution
    assert parsed.version == Version(version)
    assert parsed.raw_version == version
    assert parsed.format is fmt
    assert parsed.package_dir_name == f"{distribution}-{version}"


@pytest.mark.parametrize(
    "filename,name",
    [
        ("rich-13.6.0.tar.gz", "poetry"),
        ("rich-13.6.0.whl", "rich"),
        ("rich.tar.gz", "rich"),
        ("rich-notaversion.tar.gz", "rich"),
    ],
)
def test_parse_invalid_sdist_filename(filename, name):
    with pytest.raises(InvalidFilename):
        SDistFilename.from_filename(filename, name)


def test_sdist_filename_str():
    assert str(SDistFilename.from_filename("foo-bar-1.0.tar.gz", "foo-bar")) == "foo-bar-1.0.tar.gz"


@pytest.mark.parametrize("suffix", [".tar.gz", ".tar"])
def test_find_entry_rewinds_every_time(make_sdist, suffix):
    path = make_sdist(f"foo-1.0{suffix}", {"foo-1.0/PKG-INFO": pkg_info("foo", "1.0")})
    with SDist.from_path(path, "foo") as sdist:
        results = {sdist.find_entry("PKG-INFO") for _ in range(3)}
        sdist._reader.stream.read()
        results.add(sdist.find_entry("PKG-INFO"))
    assert results == {pkg_info("foo", "1.0").encode()}


def test_find_entry_matches_whole_path_components(make_sdist):
    path = make_sdist(
        "foo-1.0.tar.gz",
        {"foo-1.0/xPKG-INFO": "wrong", "foo-1.0/PKG-INFO": "right"},
    )
    with SDist.from_path(path, "foo") as sdist:
        assert sdist.find_entry("PKG-INFO") == b"right"
        assert sdist.find_entry("NOT-THERE") is None


def test_find_entry_returns_the_first_match(make_sdist):
    path = make_sdist(
        "foo-1.0.tar.gz",
        {"foo-1.0/tests/pyproject.toml": "first", "foo-1.0/pyproject.toml": "second"},
    )
    with SDist.from_path(path, "foo") as sdist:
        assert sdist.find_entry("pyproject.toml") == b"first"


def test_read_package_info(make_sdist):
    path = make_sdist("foo-1.0.tar.gz", {"foo-1.0/PKG-INFO": pkg_info("foo", "1.0")})
    with SDist.from_path(path, "foo") as sdist:
        data, metadata = sdist.read_package_info()
    assert data == pkg_info("foo", "1.0").encode()
    assert metadata.name == "foo"
    assert str(metadata.version) == "1.0"


def test_read_package_info_not_found(make_sdist):
    path = make_sdist("foo-1.0.tar.gz", {"foo-1.0/setup.py": ""})
    with SDist.from_path(path, "foo") as sdist, pytest.raises(NoPkgInfoFound):
        sdist.read_package_info()


def test_read_package_info_malformed(make_sdist):
    path = make_sdist("foo-1.0.tar.gz", {"foo-1.0/PKG-INFO": "Metadata-Version: 2.1\nName: foo\n"})
    with SDist.from_path(path, "foo") as sdist, pytest.raises(MetadataParseError):
        sdist.read_package_info()


def test_read_build_info(make_sdist):
    path = make_sdist(
        "foo-1.0.tar.gz",
        {"foo-1.0/pyproject.toml": '[build-system]\nrequires = ["foo>=1.0"]\nbuild-backend = "foo.build"\n'},
    )
    with SDist.from_path(path, "foo") as sdist:
        build_system = sdist.read_build_info()
    assert [r.as_line() for r in build_system.requires] == ["foo>=1.0"]
    assert build_system.build_backend == "foo.build"
    assert build_system.backend_path is None


def test_read_build_info_of_rich(make_sdist):
    path = make_sdist("rich-13.6.0.tar.gz", {"rich-13.6.0/pyproject.toml": RICH_PYPROJECT})
    with SDist.from_path(path, "rich") as sdist:
        build_system = sdist.read_build_info()
    assert [r.as_line() for r in build_system.requires] == ["poetry-core>=1.0.0"]
    assert build_system.build_backend == "poetry.core.masonry.api"
    assert build_system.backend_path is None


def test_read_build_info_errors(make_sdist):
    missing = make_sdist("foo-1.0.tar.gz", {"foo-1.0/setup.py": ""})
    with SDist.from_path(missing, "foo") as sdist, pytest.raises(NoPyProjectTomlFound):
        sdist.read_build_info()

    no_table = make_sdist("bar-1.0.tar.gz", {"bar-1.0/pyproject.toml": '[project]\nname = "bar"\n'})
    with SDist.from_path(no_table, "bar") as sdist, pytest.raises(BuildSystemNotFound):
        sdist.read_build_info()

    bad_toml = make_sdist("baz-1.0.tar.gz", {"baz-1.0/pyproject.toml": "[build-system\n"})
    with SDist.from_path(bad_toml, "baz") as sdist, pytest.raises(BuildSystemParseError, match="bad toml"):
        sdist.read_build_info()

    bad_encoding = make_sdist("qux-1.0.tar.gz", {"qux-1.0/pyproject.toml": b"\xff\xfe[build-system]"})
    with SDist.from_path(bad_encoding, "qux") as sdist, pytest.raises(BuildSystemParseError, match="bad encoding"):
        sdist.read_build_info()


@pytest.mark.parametrize(
    "files",
    [
        {"foo-1.0/setup.py": ""},
        {"foo-1.0/PKG-INFO": "Metadata-Version: 2.2\nName: foo\n"},
        {"foo-1.0/PKG-INFO": pkg_info("foo", "1.0", "2.1")},
    ],
)
def test_pep643_metadata_not_available(make_sdist, files):
    path = make_sdist("foo-1.0.tar.gz", files)
    with SDist.from_path(path, "foo") as sdist:
        assert sdist.pep643_metadata() is None


@pytest.mark.parametrize("metadata_version", ["2.2", "2.3"])
def test_pep643_metadata(make_sdist, metadata_version):
    content = pkg_info("foo", "1.0", metadata_version) + "Requires-Dist: bar>=1\n"
    path = make_sdist("foo-1.0.tar.gz", {"foo-1.0/PKG-INFO": content})
    with SDist.from_path(path, "foo") as sdist:
        result = sdist.pep643_metadata()
    assert result is not None
    data, metadata = result
    assert data == content.encode()
    assert metadata.metadata_version == metadata_version
    assert [r.as_line() for r in metadata.requires_dist] == ["bar>=1"]


def test_extract_then_find_entry_is_consistent(make_sdist, tmp_path):
    files = {
        "foo-1.0/PKG-INFO": pkg_info("foo", "1.0"),
        "foo-1.0/src/foo/__init__.py": "VALUE = 42\n",
        "foo-1.0/data.bin": bytes(range(256)),
    }
    path = make_sdist("foo-1.0.tar", files)
    dest = tmp_path / "extracted"
    with SDist.from_path(path, "foo") as sdist:
        sdist.extract_to(dest)
        for name in files:
            assert sdist.find_entry(name) == (dest / name).read_bytes()


@pytest.mark.parametrize("member", ["../evil.txt", "foo-1.0/../../evil.txt"])
def test_extract_refuses_escaping_members(make_sdist, tmp_path, member):
    path = make_sdist("foo-1.0.tar.gz", {member: "boom"})
    with SDist.from_path(path, "foo") as sdist, pytest.raises(UnpackError):
        sdist.extract_to(tmp_path / "dest")
    assert not (tmp_path / "evil.txt").exists()


def test_extract_refuses_escaping_symlink(tmp_path):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tf:
        info = tarfile.TarInfo("foo-1.0/link")
        info.type = tarfile.SYMTYPE
        info.linkname = "../../outside"
        tf.addfile(info)
    with SDist.from_bytes("foo-1.0.tar", buffer.getvalue(), "foo") as sdist, pytest.raises(UnpackError):
        sdist.extract_to(tmp_path / "dest")


def test_unsupported_format_fails_lazily():
    sdist = SDist.from_bytes("foo-1.0.zip", b"PK\x03\x04", "foo")
    assert sdist.name.format is SDistFormat.OTHER
    with pytest.raises(UnsupportedFormat, match="only tar and tar.gz are supported"):
        sdist.find_entry("PKG-INFO")
    assert sdist.pep643_metadata() is None


def test_corrupt_archive():
    sdist = SDist.from_bytes("foo-1.0.tar.gz", b"definitely not gzip", "foo")
    with pytest.raises(ArchiveError):
        sdist.find_entry("PKG-INFO")


def test_find_entry_unreadable_member(make_sdist, mocker):
    path = make_sdist("foo-1.0.tar.gz", {"foo-1.0/PKG-INFO": "content"})
    mocker.patch.object(tarfile.TarFile, "extractfile", return_value=None)
    with SDist.from_path(path, "foo") as sdist, pytest.raises(ArchiveError, match="PKG-INFO"):
        sdist.find_entry("PKG-INFO")
