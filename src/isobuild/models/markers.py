from __future__ import annotations

from typing import Iterable

from packaging.markers import default_environment
from packaging.tags import Tag, sys_tags
from packaging.utils import InvalidWheelFilename, parse_wheel_filename

Pep508EnvMarkers = dict[str, str]


def current_env_markers() -> Pep508EnvMarkers:
    """The PEP 508 marker environment of the running interpreter"""
    return dict(default_environment())


class WheelTags:
    """An ordered set of supported wheel tags, most preferred first"""

    def __init__(self, tags: Iterable[Tag]) -> None:
        self._tags = list(dict.fromkeys(tags))
        self._priority = {tag: i for i, tag in enumerate(self._tags)}

    @classmethod
    def from_env(cls) -> WheelTags:
        return cls(sys_tags())

    def __iter__(self):
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __contains__(self, tag: object) -> bool:
        return tag in self._priority

    def compatibility(self, filename: str) -> int | None:
        """Return the priority of the wheel file, lower is better, or None if
        the wheel is not installable with these tags.
        """
        try:
            *_, tags = parse_wheel_filename(filename)
        except InvalidWheelFilename:
            return None
        priorities = [self._priority[tag] for tag in tags if tag in self._priority]
        return min(priorities) if priorities else None

    def is_compatible(self, filename: str) -> bool:
        return self.compatibility(filename) is not None
