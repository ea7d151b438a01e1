from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from isobuild.cli.commands.base import BaseCommand
from isobuild.cli.options import config_setting_option, name_option, sdist_option, verbose_option
from isobuild.models.sdist import SDist
from isobuild.termui import Verbosity
from isobuild.utils import guess_sdist_name

if TYPE_CHECKING:
    from isobuild.core import Core


class Command(BaseCommand):
    """Show the core metadata of a source distribution, building it if needed"""

    arguments = [verbose_option, sdist_option, name_option, config_setting_option]

    def handle(self, core: Core, options: argparse.Namespace) -> None:
        sdist_path = Path(options.sdist)
        name = options.name or guess_sdist_name(sdist_path.name)
        with core.ui.logging("metadata"), core.create_package_db() as package_db:
            builder = core.create_wheel_builder(package_db, config_settings=options.config_setting)
            with SDist.from_path(sdist_path, name) as sdist, builder:
                with core.ui.open_spinner(f"Preparing metadata for [success]{sdist.name}[/]"):
                    data, metadata = asyncio.run(builder.get_sdist_metadata(sdist))
        core.ui.echo(
            f"[primary]{metadata.name}[/] [success]{metadata.version}[/]", err=True, verbosity=Verbosity.DETAIL
        )
        core.ui.echo(data.decode("utf-8", "replace").rstrip(), markup=False)
