from isobuild.builders.environment import BuildEnvironment
from isobuild.builders.wheel import WheelBuilder

__all__ = ["BuildEnvironment", "WheelBuilder"]
