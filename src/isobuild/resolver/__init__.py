from isobuild.resolver.base import PinnedPackage, ResolveFunc, ResolveOptions
from isobuild.resolver.core import resolve

__all__ = ["PinnedPackage", "ResolveFunc", "ResolveOptions", "resolve"]
