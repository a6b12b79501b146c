#!/usr/bin/env python3
"""Loads and checks the project build configuration (config/projects.json).

The document maps each project name to its `oss` and/or `commercial` variant,
with a `defaults` entry holding fallback variants for projects that are not
listed explicitly:

  {
    "defaults": {
      "oss": {...},
      "commercial": {...}
    },
    "spring-cloud-foo": {
      "oss": {
        "branches": {
          "scheduled": ["main", "4.1.x"],   # built on timer-triggered runs
          "default": ["main"]               # informational
        },
        "jdkVersions": {
          "main": ["17", "21", "25"],
          "4.1.x": ["17", "21"],
          "default": ["17", "21", "25"]     # used by branches not listed above
        }
      }
    }
  }

Running this script checks the document (optionally at a git revision) and
exits non-zero if any scheduled or default branch cannot be mapped to a JDK
list, or has no deploy JDK:

    python build_tools/github_actions/projects_config.py
    python build_tools/github_actions/projects_config.py --config-ref origin/main
"""

import argparse
from dataclasses import dataclass, field
from enum import Enum
import json
from pathlib import Path
import subprocess
import sys
from types import MappingProxyType
from typing import Mapping

from prettytable import PrettyTable

THIS_SCRIPT_DIR = Path(__file__).resolve().parent
REPO_ROOT = THIS_SCRIPT_DIR.parent.parent
DEFAULT_CONFIG_PATH = REPO_ROOT / "config" / "projects.json"

DEFAULTS_KEY = "defaults"
DEFAULT_JDK_KEY = "default"

# The deploy JDK of a branch is the first of these present in its JDK list.
DEPLOY_JDK_PREFERENCE = ("8", "17")


class MatrixConfigError(Exception):
    """Base class for errors resolving a build matrix."""

    pass


class InputError(MatrixConfigError):
    """A caller-supplied value (repository, branches, ...) is malformed."""

    pass


class ConfigurationError(MatrixConfigError):
    """The project configuration is missing an entry or is malformed."""

    pass


class VariantKind(Enum):
    """Configuration profile of a project, keyed by its name in the document."""

    OSS = "oss"
    COMMERCIAL = "commercial"


@dataclass(frozen=True)
class Variant:
    scheduled_branches: tuple[str, ...] = ()
    default_branches: tuple[str, ...] = ()
    jdk_versions: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def jdk_versions_for(self, branch: str) -> tuple[str, ...] | None:
        """Returns the JDK list for `branch`, falling back to the `default` entry.

        An explicit entry always wins over `default`, even when it is empty.
        Returns None when no non-empty list applies.
        """
        if branch in self.jdk_versions:
            versions = self.jdk_versions[branch]
        else:
            versions = self.jdk_versions.get(DEFAULT_JDK_KEY, ())
        return versions or None


@dataclass(frozen=True)
class ProjectConfig:
    projects: Mapping[str, Mapping[VariantKind, Variant]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    defaults: Mapping[VariantKind, Variant] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def variant_for(self, project: str, kind: VariantKind) -> Variant | None:
        """Looks up the project's variant, falling back to `defaults`."""
        variant = self.projects.get(project, {}).get(kind)
        if variant is None:
            variant = self.defaults.get(kind)
        return variant

    def iter_variants(self):
        """Yields (project name, kind, Variant) for every entry, defaults first."""
        for kind, variant in self.defaults.items():
            yield DEFAULTS_KEY, kind, variant
        for project, variants in self.projects.items():
            for kind, variant in variants.items():
                yield project, kind, variant


def find_deploy_jdk(jdk_versions) -> str | None:
    for candidate in DEPLOY_JDK_PREFERENCE:
        if candidate in jdk_versions:
            return candidate
    return None


# --------------------------------------------------------------------------- #
# Parsing
# --------------------------------------------------------------------------- #


def _parse_string_list(value, location: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigurationError(
            f"Expected a list of strings at '{location}', got {type(value).__name__}"
        )
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise ConfigurationError(
                f"Expected a string at '{location}[{index}]', got {type(item).__name__}"
            )
    return tuple(value)


def _parse_object(value, location: str) -> dict:
    if not isinstance(value, dict):
        raise ConfigurationError(
            f"Expected an object at '{location}', got {type(value).__name__}"
        )
    return value


def parse_variant(data, location: str) -> Variant:
    data = _parse_object(data, location)

    branches = _parse_object(data.get("branches", {}), f"{location}.branches")
    scheduled = _parse_string_list(
        branches.get("scheduled", []), f"{location}.branches.scheduled"
    )
    default = _parse_string_list(
        branches.get("default", []), f"{location}.branches.default"
    )

    jdk_data = _parse_object(data.get("jdkVersions", {}), f"{location}.jdkVersions")
    jdk_versions = {
        branch: _parse_string_list(versions, f"{location}.jdkVersions.{branch}")
        for branch, versions in jdk_data.items()
    }

    return Variant(
        scheduled_branches=scheduled,
        default_branches=default,
        jdk_versions=MappingProxyType(jdk_versions),
    )


def _parse_variants(data, location: str) -> Mapping[VariantKind, Variant]:
    data = _parse_object(data, location)
    known_keys = [kind.value for kind in VariantKind]

    variants = {}
    for key, value in data.items():
        if key not in known_keys:
            raise ConfigurationError(
                f"Unknown variant '{key}' at '{location}', expected one of: "
                f"{', '.join(known_keys)}"
            )
        variants[VariantKind(key)] = parse_variant(value, f"{location}.{key}")
    return MappingProxyType(variants)


def parse_project_config(data) -> ProjectConfig:
    """Builds a ProjectConfig from the decoded JSON document.

    Raises:
        ConfigurationError: If the document does not have the expected shape.
            The message names the offending location, e.g.
            'spring-cloud-foo.oss.jdkVersions.main'.
    """
    data = _parse_object(data, "<root>")

    defaults = {}
    projects = {}
    for name, value in data.items():
        if name == DEFAULTS_KEY:
            defaults = _parse_variants(value, DEFAULTS_KEY)
        else:
            projects[name] = _parse_variants(value, name)

    return ProjectConfig(
        projects=MappingProxyType(projects), defaults=MappingProxyType(defaults)
    )


# --------------------------------------------------------------------------- #
# Loading
# --------------------------------------------------------------------------- #


def _read_config_text_at_ref(config_path: Path, ref: str) -> str:
    """Reads the file contents at a git revision using `git show`."""
    # "<ref>:./<name>" resolves relative to the working directory.
    try:
        return subprocess.run(
            ["git", "show", f"{ref}:./{config_path.name}"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=True,
            text=True,
            timeout=60,
            cwd=config_path.parent,
        ).stdout
    except subprocess.CalledProcessError as e:
        raise ConfigurationError(
            f"Could not read '{config_path}' at ref '{ref}': {e.stderr.strip()}"
        ) from e
    except subprocess.TimeoutExpired as e:
        raise ConfigurationError(
            f"Timed out reading '{config_path}' at ref '{ref}'"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Could not run git to read '{config_path}' at ref '{ref}': {e}"
        ) from e


def load_project_config(config_path: str | Path, ref: str = "") -> ProjectConfig:
    """Loads the project configuration document.

    Args:
        config_path: Path to the JSON document.
        ref: Optional git revision. When set, the file is read as of that
            revision instead of from the working tree.

    Raises:
        ConfigurationError: If the file cannot be read, is not valid JSON, or
            does not have the expected shape.
    """
    config_path = Path(config_path)
    where = f"'{config_path}'" + (f" at ref '{ref}'" if ref else "")
    print(f"Loading project configuration from {where}")

    if ref:
        text = _read_config_text_at_ref(config_path, ref)
    else:
        try:
            text = config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Could not read project configuration {where}: {e}"
            ) from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Invalid JSON in project configuration {where}: {e.msg} at line {e.lineno}"
        ) from e

    return parse_project_config(data)


# --------------------------------------------------------------------------- #
# Checking
# --------------------------------------------------------------------------- #


def find_config_problems(config: ProjectConfig) -> list[str]:
    """Returns a description of every branch that would fail to resolve.

    A scheduled or default branch must map to a non-empty JDK list (its own
    entry or `jdkVersions.default`) that contains a deploy JDK.
    """
    problems = []
    for project, kind, variant in config.iter_variants():
        prefix = f"{project}.{kind.value}"

        for branch, versions in variant.jdk_versions.items():
            if not versions:
                problems.append(f"{prefix}: jdkVersions.{branch} is empty")

        branches = dict.fromkeys(variant.scheduled_branches + variant.default_branches)
        for branch in branches:
            versions = variant.jdk_versions_for(branch)
            if versions is None:
                problems.append(
                    f"{prefix}: branch '{branch}' has no jdkVersions entry and no default"
                )
            elif find_deploy_jdk(versions) is None:
                problems.append(
                    f"{prefix}: branch '{branch}' has no deploy JDK "
                    f"(one of {', '.join(DEPLOY_JDK_PREFERENCE)}) in {list(versions)}"
                )
    return problems


def format_config_table(config: ProjectConfig) -> PrettyTable:
    table = PrettyTable(["project", "variant", "scheduled", "jdkVersions"])
    table.align = "l"
    for project, kind, variant in config.iter_variants():
        jdk_summary = "; ".join(
            f"{branch}: {','.join(versions)}"
            for branch, versions in variant.jdk_versions.items()
        )
        table.add_row(
            [project, kind.value, ",".join(variant.scheduled_branches), jdk_summary]
        )
    return table


def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(
        prog="projects_config.py",
        description="Checks the project build configuration",
    )
    p.add_argument(
        "--config-path",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to the projects JSON document",
    )
    p.add_argument(
        "--config-ref",
        type=str,
        default="",
        help="Git revision to read the document at (default: working tree)",
    )
    args = p.parse_args(argv)

    try:
        config = load_project_config(args.config_path, args.config_ref)
    except ConfigurationError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    print(format_config_table(config))

    problems = find_config_problems(config)
    for problem in problems:
        print(f"[ERROR] {problem}", file=sys.stderr)
    if problems:
        print(f"Found {len(problems)} problem(s) in the project configuration")
        return 1

    print("Project configuration OK")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
