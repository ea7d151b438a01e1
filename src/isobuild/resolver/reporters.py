from __future__ import annotations

from typing import TYPE_CHECKING, Any

from resolvelib import BaseReporter

from isobuild.termui import logger

if TYPE_CHECKING:
    from resolvelib.resolvers import State

    from isobuild.models.requirements import Requirement
    from isobuild.resolver.providers import Candidate


def log_title(title: str) -> None:
    logger.info("=" * 8 + " " + title + " " + "=" * 8)


class LockReporter(BaseReporter):
    def starting(self) -> Any:
        log_title("Start resolving requirements")

    def adding_requirement(self, requirement: Requirement, parent: Candidate | None) -> None:
        parent_line = f"(from {parent.name} {parent.version})" if parent else ""
        logger.info("  Adding requirement %s%s", requirement.as_line(), parent_line)

    def rejecting_candidate(self, criterion: Any, candidate: Candidate) -> None:
        logger.debug("  Rejecting candidate %s %s", candidate.identify(), candidate.version)

    def pinning(self, candidate: Candidate) -> None:
        logger.info("  Pinning: %s %s", candidate.identify(), candidate.version)

    def ending(self, state: State) -> Any:
        log_title("Resolution Result")
        if state.mapping:
            column_width = max(map(len, state.mapping.keys()))
            for k, can in state.mapping.items():
                logger.info(f"  {k.rjust(column_width)} {can.version}")
