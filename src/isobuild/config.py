from __future__ import annotations

import collections
import dataclasses
import os
from pathlib import Path
from typing import Any, Callable, ClassVar, Iterator, Mapping, MutableMapping, cast

import platformdirs
import tomlkit

from isobuild import termui
from isobuild.exceptions import NoConfigError

ui = termui.UI()

DEFAULT_PYPI_INDEX = "https://pypi.org/simple"


def load_config(file_path: Path) -> dict[str, Any]:
    """Load a nested TOML document into key-value pairs

    E.g. ["build"]["timeout"] will be loaded as "build.timeout" key.
    """

    def get_item(sub_data: Mapping[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for k, v in sub_data.items():
            if isinstance(v, Mapping):
                result.update({f"{k}.{sub_k}": sub_v for sub_k, sub_v in get_item(v).items()})
            else:
                result.update({k: v})
        return result

    if not file_path.is_file():
        return {}
    return get_item(dict(tomlkit.parse(file_path.read_text("utf-8"))))


def ensure_boolean(val: Any) -> bool:
    """Coerce a string value to a boolean value"""
    if not isinstance(val, str):
        return val

    return bool(val) and val.lower() not in ("false", "no", "0")


def split_by_comma(val: list[str] | str) -> list[str]:
    """Split a string value by comma"""
    if isinstance(val, str):
        return [v.strip() for v in val.split(",") if v.strip()]
    return list(val)


@dataclasses.dataclass
class ConfigItem:
    """An item of configuration, with following attributes:

    Args:
        description (str): the config description
        default (Any): the default value
        env_var (str|None): the env var name to take value from
        coerce (Callable): a function to coerce the value
    """

    _NOT_SET = object()

    description: str
    default: Any = _NOT_SET
    env_var: str | None = None
    coerce: Callable = str

    def should_show(self) -> bool:
        return self.default is not self._NOT_SET


class EnvMap(Mapping[str, Any]):
    """A read-only view of the config values taken from environment variables"""

    def __init__(self, config_map: Mapping[str, ConfigItem]) -> None:
        self._config_map = config_map

    def _get_env_items(self) -> Iterator[tuple[str, str]]:
        for key, item in self._config_map.items():
            if item.env_var and item.env_var in os.environ:
                yield key, os.environ[item.env_var]

    def __getitem__(self, key: str) -> Any:
        item = self._config_map.get(key)
        if item is None or not item.env_var or item.env_var not in os.environ:
            raise KeyError(key)
        return os.environ[item.env_var]

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self._get_env_items())

    def __len__(self) -> int:
        return sum(1 for _ in self._get_env_items())


class Config(MutableMapping[str, Any]):
    """A dict-like object for configuration key and values"""

    _config_map: ClassVar[dict[str, ConfigItem]] = {
        "cache_dir": ConfigItem(
            "The root directory of cached files",
            platformdirs.user_cache_dir("isobuild"),
            env_var="ISOBUILD_CACHE_DIR",
        ),
        "log_dir": ConfigItem(
            "The root directory of log files",
            platformdirs.user_log_dir("isobuild"),
            env_var="ISOBUILD_LOG_DIR",
        ),
        "request_timeout": ConfigItem(
            "The timeout for network requests in seconds", 15, env_var="ISOBUILD_REQUEST_TIMEOUT", coerce=int
        ),
        "pypi.url": ConfigItem(
            "The URL of PyPI mirror, defaults to https://pypi.org/simple",
            DEFAULT_PYPI_INDEX,
            env_var="ISOBUILD_PYPI_URL",
        ),
        "pypi.extra_urls": ConfigItem(
            "Additional index URLs to search for build requirements",
            [],
            env_var="ISOBUILD_PYPI_EXTRA_URLS",
            coerce=split_by_comma,
        ),
        "pypi.find_links": ConfigItem(
            "Directories or pages to search for wheels besides the indexes",
            [],
            env_var="ISOBUILD_FIND_LINKS",
            coerce=split_by_comma,
        ),
        "build.timeout": ConfigItem(
            "Seconds a build backend hook may run before it is killed, 0 to wait forever",
            600,
            env_var="ISOBUILD_BUILD_TIMEOUT",
            coerce=int,
        ),
        "build.keep_env": ConfigItem(
            "Keep the build environment on disk after the build finishes",
            False,
            env_var="ISOBUILD_KEEP_BUILD_ENV",
            coerce=ensure_boolean,
        ),
        "resolve.max_rounds": ConfigItem(
            "Specify the max rounds of resolution process",
            10000,
            env_var="ISOBUILD_RESOLVE_MAX_ROUNDS",
            coerce=int,
        ),
    }

    @classmethod
    def get_defaults(cls) -> dict[str, Any]:
        return {k: v.default for k, v in cls._config_map.items() if v.should_show()}

    @classmethod
    def default_path(cls) -> Path:
        return platformdirs.user_config_path("isobuild") / "config.toml"

    def __init__(self, config_file: Path | None = None) -> None:
        self.config_file = (config_file or self.default_path()).resolve()
        self.env_map = EnvMap(self._config_map)
        self._file_data = load_config(self.config_file)
        self._data = collections.ChainMap(
            cast(MutableMapping[str, Any], self.env_map),
            self._file_data,
            self.get_defaults(),
        )

    @property
    def self_data(self) -> dict[str, Any]:
        return dict(self._file_data)

    def _save_config(self) -> None:
        """Save the changes to config file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        toml_data: dict[str, Any] = {}
        for key, value in self._file_data.items():
            *parts, last = key.split(".")
            temp = toml_data
            for part in parts:
                if part not in temp:
                    temp[part] = {}
                temp = temp[part]
            temp[last] = value

        with self.config_file.open("w", encoding="utf-8") as fp:
            tomlkit.dump(toml_data, fp)

    def __getitem__(self, key: str) -> Any:
        if key not in self._config_map:
            raise NoConfigError(key)
        config = self._config_map[key]
        if key not in self._data:
            raise NoConfigError(key) from None
        return config.coerce(self._data[key])

    def __setitem__(self, key: str, value: Any) -> None:
        if key not in self._config_map:
            raise NoConfigError(key)
        config = self._config_map[key]

        value = config.coerce(value)
        if key in self.env_map:
            ui.warn(f"the config is shadowed by env var '{config.env_var}', the value set won't take effect.")
        self._file_data[key] = value
        self._save_config()

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(set(self._data))

    def __delitem__(self, key: str) -> None:
        if key not in self._config_map:
            raise NoConfigError(key)
        config = self._config_map[key]
        self._file_data.pop(key, None)

        env_var = config.env_var
        if env_var is not None and env_var in os.environ:
            ui.warn(f"The config is shadowed by env var '{env_var}', set value won't take effect.")
        self._save_config()
