from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from isobuild.models.requirements import Requirement


class IsobuildError(Exception):
    pass


class UsageError(IsobuildError):
    pass


class RequirementError(UsageError, ValueError):
    pass


class NoConfigError(UsageError, KeyError):
    def __str__(self) -> str:
        return f"No such config key: {self.args[0]!r}"


class InvalidFilename(IsobuildError, ValueError):
    pass


class ArchiveError(IsobuildError):
    pass


class UnsupportedFormat(ArchiveError):
    def __init__(self) -> None:
        super().__init__("sdist archive format currently unsupported (only tar and tar.gz are supported)")


class UnpackError(ArchiveError):
    pass


class SDistError(IsobuildError):
    pass


class EntryNotFound(SDistError):
    pass


class NoPkgInfoFound(EntryNotFound):
    def __init__(self) -> None:
        super().__init__("No PKG-INFO found in archive")


class NoPyProjectTomlFound(EntryNotFound):
    def __init__(self) -> None:
        super().__init__("No pyproject.toml found in archive")


class BuildSystemNotFound(EntryNotFound):
    def __init__(self) -> None:
        super().__init__("No build-system found in pyproject.toml")


class BuildSystemParseError(SDistError):
    pass


class MetadataParseError(IsobuildError, ValueError):
    pass


class ResolutionError(IsobuildError):
    def __init__(self, requirements: Sequence[Requirement], reason: str | None = None) -> None:
        self.requirements = list(requirements)
        self.reason = reason
        message = "Could not resolve the build environment for: " + ", ".join(str(r) for r in self.requirements)
        if reason:
            message = f"{message}\n{reason}"
        super().__init__(message)


class FetchError(IsobuildError):
    pass


class InstallationError(IsobuildError):
    pass


class BuildError(IsobuildError, RuntimeError):
    def __init__(self, message: str, *, stage: str | None = None, stderr: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.stderr = stderr


class BackendUnavailable(BuildError):
    pass


class BuildTimeout(BuildError):
    pass
