"""
The signal definition for isobuild.

Example:
    ```python
    from isobuild.signals import build_system_defaulted

    @build_system_defaulted.connect
    def on_defaulted(sdist, error):
        print(f"{sdist.name} has no usable build-system table: {error}")
    ```
"""

from blinker import NamedSignal, Namespace

isobuild_signals = Namespace()

build_system_defaulted: NamedSignal = isobuild_signals.signal("build_system_defaulted")
"""Called when the build declaration of an sdist cannot be read and defaults are used.

Args:
    sdist (SDist): The source distribution being built
    error (Exception): The error raised while reading the declaration
"""
build_env_ready: NamedSignal = isobuild_signals.signal("build_env_ready")
"""Called after the build requirements are installed into a fresh build environment.

Args:
    environment (BuildEnvironment): The prepared build environment
"""
post_build: NamedSignal = isobuild_signals.signal("post_build")
"""Called after a wheel is built from an sdist.

Args:
    sdist (SDist): The source distribution that was built
    wheel (Path): The location of the built wheel
"""
