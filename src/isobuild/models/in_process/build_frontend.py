"""Expose the hooks of a PEP 517 build backend as command line stages.

Usage: python build_frontend.py <work_dir> <entry_point> <stage>

This script runs inside the isolated build environment with the unpacked
project as its working directory. It only depends on the standard library.
Results are written as JSON files into <work_dir>:

    GetRequiresForBuildWheel      -> extra_requirements.json
    PrepareMetadataForBuildWheel  -> metadata_result.json
    BuildWheel                    -> build_wheel_result.json

Exit code 2 means the backend could not be imported.
"""

import importlib
import json
import os
import sys
import traceback

BACKEND_UNAVAILABLE = 2


class BackendUnavailable(Exception):
    pass


def _load_backend(entry_point):
    backend_path = os.environ.get("ISOBUILD_BACKEND_PATH")
    if backend_path:
        sys.path[:0] = backend_path.split(os.pathsep)
    mod_path, _, obj_path = entry_point.partition(":")
    try:
        obj = importlib.import_module(mod_path)
    except ImportError:
        raise BackendUnavailable(traceback.format_exc())
    if obj_path:
        for path_part in obj_path.split("."):
            obj = getattr(obj, path_part)
    return obj


def _write_json(work_dir, filename, data):
    with open(os.path.join(work_dir, filename), "w", encoding="utf-8") as f:
        json.dump(data, f)


def get_requires_for_build_wheel(backend, work_dir, config_settings):
    hook = getattr(backend, "get_requires_for_build_wheel", None)
    requires = list(hook(config_settings)) if hook is not None else []
    _write_json(work_dir, "extra_requirements.json", requires)


def prepare_metadata_for_build_wheel(backend, work_dir, config_settings):
    hook = getattr(backend, "prepare_metadata_for_build_wheel", None)
    dist_info = None
    if hook is not None:
        metadata_dir = os.path.join(work_dir, "metadata")
        os.makedirs(metadata_dir, exist_ok=True)
        dist_info = hook(metadata_dir, config_settings)
    _write_json(work_dir, "metadata_result.json", {"dist_info": dist_info})


def build_wheel(backend, work_dir, config_settings):
    wheel_dir = os.path.join(work_dir, "wheel")
    os.makedirs(wheel_dir, exist_ok=True)
    metadata_directory = None
    metadata_result = os.path.join(work_dir, "metadata_result.json")
    if os.path.isfile(metadata_result):
        with open(metadata_result, encoding="utf-8") as f:
            dist_info = json.load(f).get("dist_info")
        if dist_info:
            metadata_directory = os.path.join(work_dir, "metadata", dist_info)
    filename = backend.build_wheel(wheel_dir, config_settings, metadata_directory)
    _write_json(work_dir, "build_wheel_result.json", {"wheel": filename})


STAGES = {
    "GetRequiresForBuildWheel": get_requires_for_build_wheel,
    "PrepareMetadataForBuildWheel": prepare_metadata_for_build_wheel,
    "BuildWheel": build_wheel,
}


def main():
    if len(sys.argv) != 4:
        sys.stderr.write(__doc__)
        sys.exit(1)
    work_dir, entry_point, stage = sys.argv[1:]
    if stage not in STAGES:
        sys.stderr.write("Unknown stage {!r}, expected one of {}\n".format(stage, ", ".join(STAGES)))
        sys.exit(1)
    config_settings = json.loads(os.environ.get("ISOBUILD_CONFIG_SETTINGS") or "null")
    try:
        backend = _load_backend(entry_point)
    except BackendUnavailable as e:
        sys.stderr.write("Build backend {!r} is not available:\n{}".format(entry_point, e.args[0]))
        sys.exit(BACKEND_UNAVAILABLE)
    STAGES[stage](backend, work_dir, config_settings)


if __name__ == "__main__":
    main()
