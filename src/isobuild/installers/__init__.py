from isobuild.installers.installers import InstallOptions, install_wheel
from isobuild.installers.uninstallers import uninstall_dist

__all__ = ["InstallOptions", "install_wheel", "uninstall_dist"]
