from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from isobuild.cli.commands.base import BaseCommand
from isobuild.cli.options import config_setting_option, keep_env_option, name_option, sdist_option, verbose_option
from isobuild.models.sdist import SDist
from isobuild.utils import guess_sdist_name

if TYPE_CHECKING:
    from isobuild.core import Core


class Command(BaseCommand):
    """Build a wheel from a source distribution in an isolated environment"""

    arguments = [verbose_option, sdist_option, name_option, config_setting_option, keep_env_option]

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "-d",
            "--dest",
            default="dist",
            help="Target directory to put the built wheel in, default: dist",
        )

    def handle(self, core: Core, options: argparse.Namespace) -> None:
        sdist_path = Path(options.sdist)
        name = options.name or guess_sdist_name(sdist_path.name)
        with core.ui.logging("build"), core.create_package_db() as package_db:
            builder = core.create_wheel_builder(
                package_db,
                config_settings=options.config_setting,
                keep_env=options.keep_env or None,
            )
            with SDist.from_path(sdist_path, name) as sdist, builder:
                with core.ui.open_spinner(f"Building wheel for [success]{sdist.name}[/]"):
                    wheel = asyncio.run(builder.build_wheel(sdist, options.dest))
        core.ui.echo(f"[success]Built[/] {wheel.path}")
