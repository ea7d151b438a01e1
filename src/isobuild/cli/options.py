from __future__ import annotations

import argparse
from typing import Any, Sequence


class Option:
    """An argument definition shared by several commands"""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.args = args
        self.kwargs = kwargs

    def add_to_parser(self, parser: argparse._ActionsContainer) -> None:
        parser.add_argument(*self.args, **self.kwargs)


class VerbosityOption(Option):
    """``-v`` and ``-q``, which exclude each other and both set ``verbose``"""

    def add_to_parser(self, parser: argparse._ActionsContainer) -> None:
        group = parser.add_mutually_exclusive_group()
        group.add_argument(
            "-v",
            "--verbose",
            action="count",
            default=0,
            help="Show the build log, use `-vv` to include the backend output",
        )
        group.add_argument("-q", "--quiet", action="store_const", const=-1, dest="verbose", help="Suppress output")


class ConfigSettingAction(argparse.Action):
    """Collect ``key=value`` pairs into the config settings passed to the backend.

    A key given more than once collects its values into a list, a key without
    ``=`` maps to an empty string.
    """

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: str | Sequence[Any] | None,
        option_string: str | None = None,
    ) -> None:
        if not isinstance(values, str):
            parser.error(f"{option_string} expects a single key=value argument")
        key, _, value = values.partition("=")
        settings = dict(getattr(namespace, self.dest, None) or {})
        if key not in settings:
            settings[key] = value
        elif isinstance(settings[key], list):
            settings[key] = [*settings[key], value]
        else:
            settings[key] = [settings[key], value]
        setattr(namespace, self.dest, settings)


verbose_option = VerbosityOption()

sdist_option = Option("sdist", help="The path of the source distribution archive (.tar.gz or .tar)")

name_option = Option(
    "--name",
    help="The name of the package, guessed from the archive filename if not given",
)

config_setting_option = Option(
    "-C",
    "--config-setting",
    action=ConfigSettingAction,
    metavar="KEY[=VALUE]",
    help="Pass a setting to the build backend, can be given multiple times",
)

keep_env_option = Option(
    "--keep-env",
    action="store_true",
    help="Keep the build environment on disk after the build. [env var: ISOBUILD_KEEP_BUILD_ENV]",
)
