#!/usr/bin/env python3
"""Decides whether a build matrix entry is its branch's deploy entry.

Each branch of the matrix written by determine_matrix.py has exactly one
deploy entry: the one running JDK 8 if the branch builds with JDK 8, else the
one running JDK 17. That entry deploys artifacts and publishes docs; every
other entry runs a plain install.

Example usage:

    python build_tools/github_actions/determine_deploy.py \
        --java-version 17 --has-jdk8 false

  Appended to the file specified in the "GITHUB_OUTPUT" environment variable:

    deploy=true

Environment variables JAVA_VERSION and HAS_JDK8 are used when the flags are
not passed.
"""

import argparse
import os
import sys

from github_actions_utils import gha_bool, gha_set_output, str2bool


def is_deploy_entry(java_version: str, has_jdk8: bool) -> bool:
    if has_jdk8:
        return java_version == "8"
    return java_version == "17"


def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(prog="determine_deploy.py")
    p.add_argument(
        "--java-version",
        type=str,
        default=os.getenv("JAVA_VERSION", ""),
        help="JDK version of this matrix entry (e.g. 17)",
    )
    p.add_argument(
        "--has-jdk8",
        type=str,
        default=os.getenv("HAS_JDK8", ""),
        help="Whether this entry's branch builds with JDK 8 (true/false)",
    )
    args = p.parse_args(argv)

    if not args.java_version:
        print(
            "[ERROR] No java version given (--java-version or JAVA_VERSION)",
            file=sys.stderr,
        )
        return 1
    if not args.has_jdk8.strip():
        print(
            "[ERROR] No has-jdk8 flag given (--has-jdk8 or HAS_JDK8)",
            file=sys.stderr,
        )
        return 1

    try:
        has_jdk8 = str2bool(args.has_jdk8)
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    deploy = is_deploy_entry(args.java_version.strip(), has_jdk8)
    print(f"java-version={args.java_version} has-jdk8={has_jdk8} -> deploy={deploy}")
    gha_set_output({"deploy": gha_bool(deploy)})
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
