from __future__ import annotations

import contextlib
import enum
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING

import rich
from rich.console import Console
from rich.theme import Theme

if TYPE_CHECKING:
    from typing import Any, Iterator

    from isobuild._types import RichProtocol, Spinner

logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG)
logger.addHandler(logging.NullHandler())
# index lookups and downloads log through unearth
unearth_logger = logging.getLogger("unearth")
unearth_logger.setLevel(logging.DEBUG)

THEME = Theme({"primary": "cyan", "success": "green", "warning": "yellow", "error": "red"})
rich.reconfigure(highlight=False, theme=THEME)
_err_console = Console(stderr=True, theme=THEME)

#: Log files of successful runs are removed right away, failed ones after a week
LOG_MAX_AGE = 7 * 24 * 60 * 60


class Verbosity(enum.IntEnum):
    QUIET = -1
    NORMAL = 0
    DETAIL = 1
    DEBUG = 2


LOG_LEVELS = {
    Verbosity.DETAIL: logging.INFO,
    Verbosity.DEBUG: logging.DEBUG,
}


def is_interactive() -> bool:
    return "ISOBUILD_NON_INTERACTIVE" not in os.environ and _err_console.is_interactive


def prune_logs(log_dir: str | Path, max_age: float = LOG_MAX_AGE) -> None:
    """Delete log files left by failed runs that are older than ``max_age`` seconds"""
    deadline = time.time() - max_age
    for file in Path(log_dir).glob("isobuild-*.log"):
        with contextlib.suppress(OSError):
            if file.stat().st_mtime < deadline:
                file.unlink()


class StatusLine:
    """Print the status once instead of animating it, for logs and dumb terminals"""

    def __init__(self, text: str) -> None:
        self.text = text

    def update(self, text: str) -> None:
        self.text = text
        _err_console.print(f"[primary]STATUS:[/] {text}")

    def __enter__(self) -> StatusLine:
        self.update(self.text)
        return self

    def __exit__(self, *args: Any) -> None:
        pass


class UI:
    """Terminal output of the isobuild commands"""

    def __init__(self, verbosity: Verbosity = Verbosity.NORMAL, *, exit_stack: contextlib.ExitStack | None = None):
        self.verbosity = verbosity
        self.exit_stack = exit_stack or contextlib.ExitStack()
        self.log_dir: str | None = None

    def set_verbosity(self, verbosity: int) -> None:
        self.verbosity = Verbosity(verbosity)

    def echo(
        self,
        message: str | RichProtocol = "",
        err: bool = False,
        verbosity: Verbosity = Verbosity.QUIET,
        **kwargs: Any,
    ) -> None:
        """Print a rich markup message if the verbosity is at least ``verbosity``."""
        if self.verbosity < verbosity:
            return
        console = _err_console if err else rich.get_console()
        if not console.is_interactive:
            kwargs.setdefault("crop", False)
            kwargs.setdefault("overflow", "ignore")
        console.print(message, **kwargs)

    def warn(self, message: str, verbosity: Verbosity = Verbosity.NORMAL) -> None:
        self.echo(f"[warning]WARNING:[/] {message}", err=True, verbosity=verbosity)

    def _log_handler(self, command: str) -> tuple[logging.Handler, str | None]:
        if self.verbosity >= Verbosity.DETAIL:
            handler: logging.Handler = logging.StreamHandler()
            handler.setLevel(LOG_LEVELS[self.verbosity])
            return handler, None
        if self.log_dir:
            os.makedirs(self.log_dir, exist_ok=True)
            prune_logs(self.log_dir)
        fd, log_file = tempfile.mkstemp(".log", f"isobuild-{command}-", self.log_dir)
        os.close(fd)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        return handler, log_file

    @contextlib.contextmanager
    def logging(self, command: str) -> Iterator[logging.Logger]:
        """Route the build log of a command.

        With ``-v`` the log goes to stderr. Otherwise it is written to a file
        under ``log_dir`` that is kept only when the command fails.
        """
        handler, log_file = self._log_handler(command)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
        unearth_logger.addHandler(handler)
        try:
            yield logger
        except Exception:
            if log_file:
                logger.exception("isobuild %s failed", command)
                self.echo(f"See [warning]{log_file}[/] for the build log.", style="error", err=True)
            raise
        else:
            if log_file:
                self.exit_stack.callback(_remove_file, log_file)
        finally:
            logger.removeHandler(handler)
            unearth_logger.removeHandler(handler)
            handler.close()

    def open_spinner(self, title: str) -> Spinner:
        if self.verbosity >= Verbosity.DETAIL or not is_interactive():
            return StatusLine(title)
        return _err_console.status(title, spinner="dots", spinner_style="primary")


def _remove_file(path: str) -> None:
    with contextlib.suppress(OSError):
        os.unlink(path)
