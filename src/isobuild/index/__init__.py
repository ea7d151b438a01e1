from isobuild.index.package_db import ArtifactInfo, PackageDb

__all__ = ["ArtifactInfo", "PackageDb"]
