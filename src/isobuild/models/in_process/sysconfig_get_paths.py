import json
import os
import sysconfig


def main():
    vars = None
    if "_SYSCONFIG_VARS" in os.environ:
        vars = json.loads(os.environ["_SYSCONFIG_VARS"])
    print(json.dumps(sysconfig.get_paths(vars=vars)))


if __name__ == "__main__":
    main()
