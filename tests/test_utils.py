import pytest

from isobuild import utils


@pytest.mark.parametrize(
    "name,expected",
    [("Foo", "foo"), ("foo_bar", "foo-bar"), ("Foo.Bar--baz", "foo-bar-baz"), ("poetry-core", "poetry-core")],
)
def test_normalize_name(name, expected):
    assert utils.normalize_name(name) == expected


@pytest.mark.parametrize(
    "filename,expected",
    [
        ("foo-1.0.tar.gz", ("foo-1.0", ".tar.gz")),
        ("foo-1.0.TAR.GZ", ("foo-1.0", ".TAR.GZ")),
        ("foo-1.0.tar", ("foo-1.0", ".tar")),
        ("foo-1.0.tar.bz2", ("foo-1.0", ".tar.bz2")),
        ("foo-1.0.zip", ("foo-1.0", ".zip")),
    ],
)
def test_split_archive_suffix(filename, expected):
    assert utils.split_archive_suffix(filename) == expected


@pytest.mark.parametrize(
    "filename,expected",
    [
        ("rich-13.6.0.tar.gz", "rich"),
        ("/tmp/Foo_Bar-1.0.tar", "foo-bar"),
        ("typing-extensions-4.8.0.tar.gz", "typing-extensions"),
    ],
)
def test_guess_sdist_name(filename, expected):
    assert utils.guess_sdist_name(filename) == expected


def test_is_path_relative_to(tmp_path):
    assert utils.is_path_relative_to(tmp_path / "a" / "b", tmp_path)
    assert not utils.is_path_relative_to(tmp_path.parent, tmp_path)

