import argparse
from typing import TYPE_CHECKING, Any, Mapping

from isobuild import termui
from isobuild.cli.commands.base import BaseCommand
from isobuild.config import Config

if TYPE_CHECKING:
    from isobuild.core import Core


class Command(BaseCommand):
    """Display the current configuration"""

    ui: termui.UI

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("-d", "--delete", action="store_true", help="Unset a configuration key")
        parser.add_argument("key", help="Config key", nargs="?")
        parser.add_argument("value", help="Config value", nargs="?")

    def handle(self, core: "Core", options: argparse.Namespace) -> None:
        self.ui = core.ui
        if options.delete:
            del core.config[options.key]
        elif options.value:
            core.config[options.key] = options.value
        elif options.key:
            self.ui.echo(core.config[options.key])
        else:
            self._list_config(core.config)

    def _show_config(self, config: Mapping[str, Any], supersedes: Mapping[str, Any]) -> None:
        for key in sorted(config):
            if key not in Config._config_map:
                continue
            extra_style = "dim" if key in supersedes else None
            config_item = Config._config_map[key]
            self.ui.echo(
                f"[warning]# {config_item.description}",
                style=extra_style,
                verbosity=termui.Verbosity.DETAIL,
            )
            self.ui.echo(f"[primary]{key}[/] = {config[key]}", style=extra_style)

    def _list_config(self, config: Config) -> None:
        self.ui.echo("Default configuration:", style="bold")
        self._show_config(Config.get_defaults(), config.self_data)

        if config.self_data:
            self.ui.echo(f"\nHome configuration ([success]{config.config_file}[/]):", style="bold")
            self._show_config(config.self_data, {})
