from isobuild.environments.venv import PythonLocation, VEnv

__all__ = ["PythonLocation", "VEnv"]
