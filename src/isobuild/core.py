"""Build wheels from source distributions in isolated environments."""

from __future__ import annotations

import argparse
import contextlib
import importlib
import os
import pkgutil
import sys
from pathlib import Path
from typing import TYPE_CHECKING, cast

from isobuild import termui
from isobuild.__version__ import __version__
from isobuild.builders import WheelBuilder
from isobuild.cli.options import verbose_option
from isobuild.cli.utils import ArgumentParser
from isobuild.config import Config
from isobuild.exceptions import UsageError
from isobuild.index import PackageDb
from isobuild.models.markers import WheelTags, current_env_markers
from isobuild.resolver import ResolveOptions

if TYPE_CHECKING:
    from typing import Any, Mapping

    from isobuild.cli.commands.base import BaseCommand

COMMANDS_MODULE_PATH = importlib.import_module("isobuild.cli.commands").__path__


class Core:
    """A high level object that manages all classes and configurations"""

    parser: argparse.ArgumentParser
    subparsers: argparse._SubParsersAction

    def __init__(self, config_file: str | Path | None = None) -> None:
        self.version = __version__
        self.exit_stack = contextlib.ExitStack()
        self.ui = termui.UI(exit_stack=self.exit_stack)
        self._config_file = config_file
        self._config: Config | None = None
        self.init_parser()

    @property
    def config(self) -> Config:
        if self._config is None:
            config_file = self._config_file or os.getenv("ISOBUILD_CONFIG_FILE")
            self._config = Config(Path(config_file) if config_file else None)
        return self._config

    def init_parser(self) -> None:
        self.parser = ArgumentParser(prog="isobuild", description=__doc__)
        self.parser.add_argument(
            "-V",
            "--version",
            action="version",
            version=f"isobuild, version {self.version}",
            help="Show the version and exit",
        )
        self.parser.add_argument(
            "-c",
            "--config",
            help="Specify another config file path [env var: ISOBUILD_CONFIG_FILE] ",
        )
        verbose_option.add_to_parser(self.parser)

        self.subparsers = self.parser.add_subparsers(parser_class=ArgumentParser, title="commands", metavar="")
        for _, name, _ in pkgutil.iter_modules(COMMANDS_MODULE_PATH):
            module = importlib.import_module(f"isobuild.cli.commands.{name}", __name__)
            try:
                klass = module.Command
            except AttributeError:
                continue
            self.register_command(klass, klass.name or name)

    def register_command(self, command: type[BaseCommand], name: str | None = None) -> None:
        """Register a subcommand to the subparsers,
        with an optional name of the subcommand.
        """
        assert self.subparsers
        command.register_to(self.subparsers, name)

    def create_package_db(self) -> PackageDb:
        config = self.config
        return PackageDb(
            [config["pypi.url"], *config["pypi.extra_urls"]],
            os.path.expanduser(config["cache_dir"]),
            find_links=config["pypi.find_links"],
            timeout=config["request_timeout"],
        )

    def create_wheel_builder(
        self,
        package_db: PackageDb,
        *,
        config_settings: Mapping[str, Any] | None = None,
        keep_env: bool | None = None,
    ) -> WheelBuilder:
        config = self.config
        return WheelBuilder(
            package_db,
            current_env_markers(),
            WheelTags.from_env(),
            ResolveOptions(max_rounds=config["resolve.max_rounds"]),
            config_settings=config_settings,
            build_timeout=config["build.timeout"] or None,
            keep_env=config["build.keep_env"] if keep_env is None else keep_env,
        )

    def handle(self, options: argparse.Namespace) -> None:
        """Called before command invocation"""
        self.ui.set_verbosity(options.verbose)
        if options.config:
            self._config_file = options.config
            self._config = None
        self.ui.log_dir = os.path.expanduser(cast(str, self.config["log_dir"]))

        command = cast("BaseCommand | None", getattr(options, "command", None))
        if command is None:
            self.parser.print_help()
            sys.exit(0)
        command.handle(self, options)

    def main(self, args: list[str] | None = None) -> None:
        """The main entry function"""
        options = self.parser.parse_args(args or [])
        try:
            self.handle(options)
        except Exception:
            etype, err, traceback = sys.exc_info()
            should_show_tb = not isinstance(err, UsageError)
            if self.ui.verbosity > termui.Verbosity.NORMAL and should_show_tb:
                raise cast(Exception, err).with_traceback(traceback) from None
            self.ui.echo(
                rf"[error]\[{etype.__name__}][/]: {err}",  # type: ignore[union-attr]
                err=True,
            )
            if should_show_tb:
                self.ui.warn("Add '-v' to see the detailed traceback", verbosity=termui.Verbosity.NORMAL)
            sys.exit(1)


def main(args: list[str] | None = None) -> None:
    """The CLI entry function"""
    core = Core()
    with core.exit_stack:
        return core.main(args or sys.argv[1:])
