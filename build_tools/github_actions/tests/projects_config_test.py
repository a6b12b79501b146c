import json
import os
from pathlib import Path
import subprocess
import sys
import tempfile
import unittest
from unittest import mock

sys.path.insert(0, os.fspath(Path(__file__).parent.parent))
import projects_config
from projects_config import (
    DEFAULT_CONFIG_PATH,
    ConfigurationError,
    Variant,
    VariantKind,
    find_config_problems,
    find_deploy_jdk,
    load_project_config,
    parse_project_config,
)


class VariantTest(unittest.TestCase):
    def test_explicit_entry(self):
        variant = Variant(jdk_versions={"main": ("17", "21"), "default": ("17",)})
        self.assertEqual(variant.jdk_versions_for("main"), ("17", "21"))

    def test_falls_back_to_default(self):
        variant = Variant(jdk_versions={"main": ("17", "21"), "default": ("17",)})
        self.assertEqual(variant.jdk_versions_for("4.1.x"), ("17",))

    def test_no_entry_and_no_default(self):
        variant = Variant(jdk_versions={"main": ("17", "21")})
        self.assertIsNone(variant.jdk_versions_for("4.1.x"))

    def test_empty_explicit_entry_does_not_use_default(self):
        variant = Variant(jdk_versions={"main": (), "default": ("17",)})
        self.assertIsNone(variant.jdk_versions_for("main"))

    def test_find_deploy_jdk(self):
        self.assertEqual(find_deploy_jdk(("8", "11", "17")), "8")
        self.assertEqual(find_deploy_jdk(("17", "21")), "17")
        self.assertIsNone(find_deploy_jdk(("21", "25")))


class ParseProjectConfigTest(unittest.TestCase):
    def test_parses_projects_and_defaults(self):
        config = parse_project_config(
            {
                "defaults": {"oss": {"jdkVersions": {"default": ["17"]}}},
                "foo": {
                    "oss": {
                        "branches": {
                            "scheduled": ["main", "4.1.x"],
                            "default": ["main"],
                        },
                        "jdkVersions": {"main": ["17", "21"]},
                    }
                },
            }
        )
        foo = config.variant_for("foo", VariantKind.OSS)
        self.assertEqual(foo.scheduled_branches, ("main", "4.1.x"))
        self.assertEqual(foo.default_branches, ("main",))
        self.assertEqual(foo.jdk_versions["main"], ("17", "21"))

        bar = config.variant_for("bar", VariantKind.OSS)
        self.assertEqual(bar.jdk_versions_for("anything"), ("17",))
        self.assertIsNone(config.variant_for("bar", VariantKind.COMMERCIAL))

    def test_project_without_variant_uses_defaults(self):
        config = parse_project_config(
            {
                "defaults": {"commercial": {"jdkVersions": {"default": ["8"]}}},
                "foo": {"oss": {}},
            }
        )
        variant = config.variant_for("foo", VariantKind.COMMERCIAL)
        self.assertEqual(variant.jdk_versions_for("3.1.x"), ("8",))

    def test_missing_sections_default_to_empty(self):
        config = parse_project_config({"foo": {"oss": {}}})
        variant = config.variant_for("foo", VariantKind.OSS)
        self.assertEqual(variant.scheduled_branches, ())
        self.assertEqual(variant.default_branches, ())
        self.assertEqual(dict(variant.jdk_versions), {})

    def test_parsed_config_is_read_only(self):
        config = parse_project_config(
            {
                "defaults": {"oss": {"jdkVersions": {"default": ["17"]}}},
                "foo": {"oss": {"jdkVersions": {"main": ["17", "21"]}}},
            }
        )
        foo = config.variant_for("foo", VariantKind.OSS)
        with self.assertRaises(TypeError):
            foo.jdk_versions["main"] = ("8",)
        with self.assertRaises(TypeError):
            config.projects["bar"] = {}
        with self.assertRaises(TypeError):
            config.projects["foo"][VariantKind.COMMERCIAL] = foo
        with self.assertRaises(TypeError):
            config.defaults[VariantKind.COMMERCIAL] = foo
        self.assertEqual(foo.jdk_versions_for("main"), ("17", "21"))

    def test_default_mappings_are_read_only(self):
        with self.assertRaises(TypeError):
            Variant().jdk_versions["main"] = ("17",)
        with self.assertRaises(TypeError):
            projects_config.ProjectConfig().defaults[VariantKind.OSS] = Variant()

    def test_structural_errors_name_location(self):
        cases = [
            ([], "<root>"),
            ({"foo": []}, "foo"),
            ({"foo": {"enterprise": {}}}, "enterprise"),
            ({"foo": {"oss": "main"}}, "foo.oss"),
            ({"foo": {"oss": {"branches": []}}}, "foo.oss.branches"),
            (
                {"foo": {"oss": {"branches": {"scheduled": "main"}}}},
                "foo.oss.branches.scheduled",
            ),
            (
                {"foo": {"oss": {"jdkVersions": {"main": ["17", 21]}}}},
                "foo.oss.jdkVersions.main[1]",
            ),
            (
                {"defaults": {"oss": {"jdkVersions": {"default": "17"}}}},
                "defaults.oss.jdkVersions.default",
            ),
        ]
        for data, location in cases:
            with self.subTest(location=location):
                with self.assertRaises(ConfigurationError) as context:
                    parse_project_config(data)
                self.assertIn(location, str(context.exception))


class LoadProjectConfigTest(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.config_path = Path(self.temp_dir.name) / "projects.json"

    def test_loads_from_working_tree(self):
        self.config_path.write_text(
            json.dumps({"foo": {"oss": {"jdkVersions": {"main": ["17"]}}}})
        )
        config = load_project_config(self.config_path)
        self.assertEqual(
            config.variant_for("foo", VariantKind.OSS).jdk_versions_for("main"),
            ("17",),
        )

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError) as context:
            load_project_config(self.config_path)
        self.assertIn("projects.json", str(context.exception))

    def test_invalid_json(self):
        self.config_path.write_text("{not json")
        with self.assertRaises(ConfigurationError) as context:
            load_project_config(self.config_path)
        self.assertIn("Invalid JSON", str(context.exception))

    def test_loads_at_ref_with_git_show(self):
        document = json.dumps({"foo": {"oss": {"jdkVersions": {"default": ["21"]}}}})
        mock_result = mock.Mock()
        mock_result.stdout = document

        with mock.patch(
            "projects_config.subprocess.run", return_value=mock_result
        ) as mock_run:
            config = load_project_config(self.config_path, ref="origin/main")

        args, kwargs = mock_run.call_args
        self.assertEqual(args[0], ["git", "show", "origin/main:./projects.json"])
        self.assertEqual(kwargs["cwd"], self.config_path.parent)
        self.assertEqual(
            config.variant_for("foo", VariantKind.OSS).jdk_versions_for("main"),
            ("21",),
        )

    def test_git_show_failure(self):
        error = subprocess.CalledProcessError(
            128, ["git", "show"], stderr="fatal: invalid object name 'nope'\n"
        )
        with mock.patch("projects_config.subprocess.run", side_effect=error):
            with self.assertRaises(ConfigurationError) as context:
                load_project_config(self.config_path, ref="nope")
        self.assertIn("nope", str(context.exception))
        self.assertIn("invalid object name", str(context.exception))

    def test_git_show_timeout(self):
        error = subprocess.TimeoutExpired(["git", "show"], 60)
        with mock.patch("projects_config.subprocess.run", side_effect=error):
            with self.assertRaises(ConfigurationError):
                load_project_config(self.config_path, ref="main")


class FindConfigProblemsTest(unittest.TestCase):
    def test_valid_config_has_no_problems(self):
        config = parse_project_config(
            {
                "foo": {
                    "oss": {
                        "branches": {
                            "scheduled": ["main", "4.1.x"],
                            "default": ["main"],
                        },
                        "jdkVersions": {"main": ["17", "21"], "default": ["17"]},
                    },
                    "commercial": {
                        "branches": {"scheduled": ["3.1.x"]},
                        "jdkVersions": {"3.1.x": ["8", "11", "17"]},
                    },
                }
            }
        )
        self.assertEqual(find_config_problems(config), [])

    def test_branch_without_mapping(self):
        config = parse_project_config(
            {
                "foo": {
                    "oss": {
                        "branches": {"scheduled": ["main", "4.1.x"]},
                        "jdkVersions": {"main": ["17"]},
                    }
                }
            }
        )
        problems = find_config_problems(config)
        self.assertEqual(len(problems), 1)
        self.assertIn("foo.oss", problems[0])
        self.assertIn("'4.1.x'", problems[0])

    def test_empty_jdk_list(self):
        config = parse_project_config(
            {"foo": {"oss": {"jdkVersions": {"main": []}}}}
        )
        problems = find_config_problems(config)
        self.assertEqual(problems, ["foo.oss: jdkVersions.main is empty"])

    def test_branch_without_deploy_jdk(self):
        config = parse_project_config(
            {
                "defaults": {
                    "oss": {
                        "branches": {"default": ["main"]},
                        "jdkVersions": {"default": ["21", "25"]},
                    }
                }
            }
        )
        problems = find_config_problems(config)
        self.assertEqual(len(problems), 1)
        self.assertIn("defaults.oss", problems[0])
        self.assertIn("no deploy JDK", problems[0])

    def test_checked_in_config_has_no_problems(self):
        config = load_project_config(DEFAULT_CONFIG_PATH)
        self.assertEqual(find_config_problems(config), [])


class ProjectsConfigMainTest(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.config_path = Path(self.temp_dir.name) / "projects.json"

    def test_valid_config(self):
        self.config_path.write_text(
            json.dumps(
                {
                    "foo": {
                        "oss": {
                            "branches": {"scheduled": ["main"]},
                            "jdkVersions": {"main": ["17"]},
                        }
                    }
                }
            )
        )
        self.assertEqual(
            projects_config.main([f"--config-path={self.config_path}"]), 0
        )

    def test_config_with_problems(self):
        self.config_path.write_text(
            json.dumps({"foo": {"oss": {"branches": {"scheduled": ["main"]}}}})
        )
        self.assertEqual(
            projects_config.main([f"--config-path={self.config_path}"]), 1
        )

    def test_unreadable_config(self):
        self.assertEqual(
            projects_config.main([f"--config-path={self.config_path}"]), 1
        )


if __name__ == "__main__":
    unittest.main()
