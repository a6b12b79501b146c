#!/usr/bin/env python3

"""Determines the branch x JDK build matrix for a Spring Cloud project.

----------
| Inputs |
----------

  Command line flags take precedence over environment variables:
  * --repository   / REPOSITORY or GITHUB_REPOSITORY : "org/repo-name".
                     Repositories ending in "-commercial" use the commercial
                     variant of the project without that suffix.
  * --event-name   / GITHUB_EVENT_NAME : GitHub event name, e.g. schedule.
  * --ref-name     / GITHUB_REF_NAME   : The branch being built.
  * --branches     / INPUT_BRANCHES (optional) : Comma-separated branch list,
                     overriding both the scheduled branches and the ref.
  * --config-path  / CONFIG_PATH (optional) : Path to the projects JSON document.
  * --config-ref   / CONFIG_REF (optional) : Git revision to read it at.
  * GITHUB_OUTPUT        : path to write workflow output variables.
  * GITHUB_STEP_SUMMARY  : path to write workflow summary output.

-----------
| Outputs |
-----------

  Written to GITHUB_OUTPUT:
  * matrix : JSON list of {"branch", "java-version", "has-jdk8"} entries,
             one per branch x JDK version.
  * branches : Comma-separated list of the branches that were resolved.
  * branch-jdk-mapping : JSON object of branch -> JDK versions.

  Written to GITHUB_STEP_SUMMARY:
  * Human-readable summary for most contributors

  Written to stdout/stderr:
  * Detailed information for CI maintainers

Nothing is written to GITHUB_OUTPUT if resolution fails; the script exits 1
with an [ERROR] line naming the project, variant or branch that could not be
resolved.
"""

import argparse
from dataclasses import dataclass
import json
import os
from pathlib import Path
import re
import sys

from prettytable import PrettyTable

from determine_deploy import is_deploy_entry
from github_actions_utils import *
from projects_config import (
    DEFAULT_CONFIG_PATH,
    ConfigurationError,
    InputError,
    MatrixConfigError,
    ProjectConfig,
    VariantKind,
    find_deploy_jdk,
    load_project_config,
)

COMMERCIAL_SUFFIX = "-commercial"
SCHEDULE_EVENT_NAME = "schedule"

# Whitespace, control characters and the other characters `git check-ref-format`
# rejects anywhere in a ref name.
INVALID_BRANCH_CHARS = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]")


@dataclass(frozen=True)
class ResolvedBranch:
    branch: str
    jdk_versions: tuple[str, ...]

    @property
    def has_jdk8(self) -> bool:
        return "8" in self.jdk_versions

    @property
    def deploy_jdk(self) -> str | None:
        return find_deploy_jdk(self.jdk_versions)


@dataclass(frozen=True)
class MatrixEntry:
    branch: str
    java_version: str
    has_jdk8: bool

    @property
    def is_deploy(self) -> bool:
        return is_deploy_entry(self.java_version, self.has_jdk8)

    def to_json(self) -> dict:
        return {
            "branch": self.branch,
            "java-version": self.java_version,
            "has-jdk8": self.has_jdk8,
        }


@dataclass(frozen=True)
class MatrixResult:
    project: str
    kind: VariantKind
    resolved_branches: tuple[ResolvedBranch, ...]
    matrix: tuple[MatrixEntry, ...]

    @property
    def branches(self) -> str:
        return ",".join(resolved.branch for resolved in self.resolved_branches)

    @property
    def branch_jdk_mapping(self) -> dict[str, list[str]]:
        return {
            resolved.branch: list(resolved.jdk_versions)
            for resolved in self.resolved_branches
        }


# --------------------------------------------------------------------------- #
# Parsing helpers
# --------------------------------------------------------------------------- #


def classify_repository(repository: str) -> tuple[str, VariantKind]:
    """Returns the project key and variant for an "org/repo-name" string.

    "spring-cloud/spring-cloud-foo-commercial" -> ("spring-cloud-foo", COMMERCIAL)
    "spring-cloud/spring-cloud-foo"            -> ("spring-cloud-foo", OSS)
    """
    repository = repository.strip()
    parts = repository.split("/")
    if len(parts) != 2 or not all(parts):
        raise InputError(
            f"Expected repository in 'org/repo-name' form, got '{repository}'"
        )

    repo_name = parts[1]
    if repo_name.endswith(COMMERCIAL_SUFFIX):
        project = repo_name.removesuffix(COMMERCIAL_SUFFIX)
        if not project:
            raise InputError(f"No project name in repository '{repository}'")
        return project, VariantKind.COMMERCIAL
    return repo_name, VariantKind.OSS


def check_branch_name(branch: str) -> str:
    """Rejects branch names containing characters git does not allow in refs.

    Branch names are written as-is to GITHUB_OUTPUT, one `key=value` per line.
    """
    match = INVALID_BRANCH_CHARS.search(branch)
    if match:
        raise InputError(
            f"Invalid branch name {branch!r}: contains {match.group()!r}"
        )
    return branch


def parse_branch_override(value: str | None) -> list[str]:
    """Splits a comma-separated branch list, keeping order and duplicates.

    (ex: " main, 4.1.x" -> ["main", "4.1.x"])
    """
    if not value:
        return []
    return [
        check_branch_name(branch.strip())
        for branch in value.split(",")
        if branch.strip()
    ]


# --------------------------------------------------------------------------- #
# Matrix creation logic based on schedule, override, or ref
# --------------------------------------------------------------------------- #


def determine_branches(
    event_name: str, ref_name: str, branch_override: str | None, variant
) -> list[str]:
    override = parse_branch_override(branch_override)
    if override:
        print(f"[OVERRIDE] Using explicitly provided branches: {override}")
        branches = override
    elif event_name == SCHEDULE_EVENT_NAME:
        branches = list(variant.scheduled_branches)
        print(f"[SCHEDULE] Using scheduled branches: {branches}")
        if not branches:
            raise InputError("Scheduled run but no scheduled branches are configured")
    else:
        print(f"[{event_name.upper() or 'NO EVENT'}] Using ref branch: {ref_name}")
        if not ref_name:
            raise InputError(
                f"No branch to build: ref name is empty for '{event_name}' event "
                "and no branches were given"
            )
        branches = [check_branch_name(ref_name)]
    return branches


def resolve_matrix(
    repository: str,
    event_name: str,
    ref_name: str,
    branch_override: str | None,
    config: ProjectConfig,
) -> MatrixResult:
    """Resolves the branches to build and the JDK versions for each.

    Raises:
        InputError: If the repository is malformed or no branch can be built.
        ConfigurationError: If there is no configuration for the project
            variant (and no default), or a branch has no JDK versions.
    """
    project, kind = classify_repository(repository)
    print(f"Resolving matrix for project '{project}' ({kind.value} variant)")

    variant = config.variant_for(project, kind)
    if variant is None:
        raise ConfigurationError(
            f"No '{kind.value}' configuration for project '{project}' "
            f"and no defaults.{kind.value} entry"
        )

    branches = determine_branches(event_name, ref_name, branch_override, variant)

    resolved_branches = []
    for branch in branches:
        jdk_versions = variant.jdk_versions_for(branch)
        if jdk_versions is None:
            raise ConfigurationError(
                f"No JDK versions for branch '{branch}' of project '{project}' "
                f"({kind.value} variant): no jdkVersions entry and no default"
            )
        resolved_branches.append(ResolvedBranch(branch, jdk_versions))

    matrix = []
    for resolved in resolved_branches:
        for java_version in resolved.jdk_versions:
            matrix.append(MatrixEntry(resolved.branch, java_version, resolved.has_jdk8))

    result = MatrixResult(
        project=project,
        kind=kind,
        resolved_branches=tuple(resolved_branches),
        matrix=tuple(matrix),
    )
    print(f"Generated build matrix with {len(result.matrix)} entries")
    return result


# --------------------------------------------------------------------------- #
# Core script logic
# --------------------------------------------------------------------------- #


def format_matrix_table(result: MatrixResult) -> PrettyTable:
    table = PrettyTable(["branch", "java-version", "has-jdk8", "deploy"])
    for entry in result.matrix:
        table.add_row(
            [
                entry.branch,
                entry.java_version,
                gha_bool(entry.has_jdk8),
                "yes" if entry.is_deploy else "",
            ]
        )
    return table


def _emit_summary_and_outputs(result: MatrixResult) -> None:
    branch_lines = "\n".join(
        f"* `{resolved.branch}`: JDK {', '.join(resolved.jdk_versions)}"
        f" (deploy: {resolved.deploy_jdk or 'none'})"
        for resolved in result.resolved_branches
    )
    gha_append_step_summary(
        f"""## Build matrix for `{result.project}` ({result.kind.value})

{branch_lines}
    """
    )

    output = {
        "matrix": json.dumps([entry.to_json() for entry in result.matrix]),
        "branches": result.branches,
        "branch-jdk-mapping": json.dumps(result.branch_jdk_mapping),
    }
    gha_set_output(output)


def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(
        prog="determine_matrix.py",
        description="Determines the branch x JDK build matrix for a project",
    )
    p.add_argument(
        "--repository",
        type=str,
        default=os.getenv("REPOSITORY") or os.getenv("GITHUB_REPOSITORY", ""),
        help="Repository in 'org/repo-name' form",
    )
    p.add_argument(
        "--event-name",
        type=str,
        default=os.getenv("GITHUB_EVENT_NAME", ""),
        help="Triggering event name (e.g. schedule, push, workflow_dispatch)",
    )
    p.add_argument(
        "--ref-name",
        type=str,
        default=os.getenv("GITHUB_REF_NAME", ""),
        help="Branch to build when not scheduled and no branches are given",
    )
    p.add_argument(
        "--branches",
        type=str,
        default=os.getenv("INPUT_BRANCHES", ""),
        help="Comma-separated branches to build, overriding schedule and ref",
    )
    p.add_argument(
        "--config-path",
        type=Path,
        default=Path(os.getenv("CONFIG_PATH") or DEFAULT_CONFIG_PATH),
        help="Path to the projects JSON document",
    )
    p.add_argument(
        "--config-ref",
        type=str,
        default=os.getenv("CONFIG_REF", ""),
        help="Git revision to read the projects document at (default: working tree)",
    )
    args = p.parse_args(argv)

    gha_warn_if_not_running_on_ci()
    print("Found metadata:")
    print(f"  repository: {args.repository}")
    print(f"  event_name: {args.event_name}")
    print(f"  ref_name: {args.ref_name}")
    print(f"  branches: {args.branches}")
    print("")

    try:
        config = load_project_config(args.config_path, args.config_ref)
        result = resolve_matrix(
            args.repository,
            args.event_name,
            args.ref_name,
            args.branches,
            config,
        )
    except MatrixConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    print(format_matrix_table(result))
    _emit_summary_and_outputs(result)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
