import hashlib
import json
import os
import tempfile
import unittest
from unittest.mock import patch

import click
from click.testing import CliRunner

from pypicli.cli import main
from pypicli.commands.info import info, parse_dependency
from pypicli.commands.security import advisory_url, fixed_version, vulnerability_severity
from pypicli.commands.stats import aggregate_shares, daily_downloads, period_start
from pypicli.core.errors import AuthenticationError, ConflictError, PackageNotFoundError
from pypicli.core.upload import UploadResult
from pypicli.utils.pypi import ApiResponse

TOKEN = "pypi-" + "A" * 40

PACKAGE = {
    "info": {
        "name": "requests",
        "version": "2.31.0",
        "summary": "Python HTTP for Humans.",
        "author": "Kenneth Reitz",
        "requires_dist": ["charset-normalizer (<4,>=2)", 'PySocks (!=1.5.7,>=1.5.6) ; extra == "socks"'],
    },
    "releases": {
        "2.30.0": [{"upload_time": "2023-05-22T15:12:44", "requires_python": ">=3.7"}],
        "2.31.0": [{"upload_time": "2023-05-22T15:12:42", "requires_python": ">=3.7"}],
    },
    "urls": [
        {
            "filename": "requests-2.31.0-py3-none-any.whl",
            "url": "https://files.example/requests-2.31.0-py3-none-any.whl",
            "size": 62574,
            "packagetype": "bdist_wheel",
            "python_version": "py3",
            "upload_time": "2023-05-22T15:12:42",
            "digests": {"sha256": hashlib.sha256(b"wheel").hexdigest(), "md5": hashlib.md5(b"wheel").hexdigest()},
        },
    ],
}


class CliTestCase(unittest.TestCase):
    """Runs the CLI in a temporary directory with a fake HOME and a mocked API client."""

    def setUp(self):
        self.runner = CliRunner()
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.home = os.path.join(self.tmp.name, "home")
        os.makedirs(self.home)

        cwd = os.getcwd()
        os.chdir(self.tmp.name)
        self.addCleanup(os.chdir, cwd)

        patcher = patch("pypicli.cli.PyPIClient")
        self.client_class = patcher.start()
        self.client = self.client_class.return_value
        self.addCleanup(patcher.stop)

    def invoke(self, *args, **kwargs):
        env = {"HOME": self.home, "PYPI_API_TOKEN": None, "PYPI_REPOSITORY": None, "PYPI_OUTPUT_FORMAT": None}
        env.update(kwargs.pop("env", {}))
        return self.runner.invoke(main, ["--no-color", *args], env=env, **kwargs)

    def make_dist(self, *names, size=2048):
        dist = os.path.join(self.tmp.name, "dist")
        os.makedirs(dist, exist_ok=True)
        for name in names:
            with open(os.path.join(dist, name), "wb") as f:
                f.write(b"\0" * size)
        return dist


class TestInfoCommands(CliTestCase):

    def test_info_runs_show_by_default(self):
        self.client.get_package.return_value = ApiResponse(data=PACKAGE)
        result = self.invoke("info", "requests", "--json")

        self.assertEqual(result.exit_code, 0, result.output)
        self.client.get_package.assert_called_once_with("requests", None)
        self.assertEqual(json.loads(result.output)["version"], "2.31.0")

    def test_info_show_pretty(self):
        self.client.get_package.return_value = ApiResponse(data=PACKAGE)
        result = self.invoke("info", "show", "requests", "2.31.0")

        self.assertEqual(result.exit_code, 0, result.output)
        self.client.get_package.assert_called_once_with("requests", "2.31.0")
        self.assertIn("requests 2.31.0", result.output)
        self.assertIn("Python HTTP for Humans.", result.output)

    def test_info_not_found(self):
        self.client.get_package.side_effect = PackageNotFoundError()
        result = self.invoke("info", "nope")

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Failed to get package info: Package not found", result.output)
        self.assertIn('Package "nope" not found on PyPI', result.output)

    def test_versions(self):
        self.client.get_package.return_value = ApiResponse(data=PACKAGE)
        result = self.invoke("info", "versions", "requests", "--json")

        versions = json.loads(result.output)
        self.assertEqual([v["version"] for v in versions], ["2.31.0", "2.30.0"])
        self.assertTrue(versions[0]["is_latest"])
        self.assertEqual(versions[0]["released"], "2023-05-22")

    def test_versions_limit(self):
        self.client.get_package.return_value = ApiResponse(data=PACKAGE)
        result = self.invoke("info", "versions", "requests", "--limit", "1")
        self.assertIn("Showing 1 of 2 versions", result.output)

    def test_releases_json(self):
        self.client.get_package.return_value = ApiResponse(data=PACKAGE)
        result = self.invoke("info", "releases", "requests", "--json")
        files = json.loads(result.output)
        self.assertEqual(files[0]["type"], "bdist_wheel")
        self.assertEqual(files[0]["upload_date"], "2023-05-22")

    def test_deps(self):
        self.client.get_package.return_value = ApiResponse(data=PACKAGE)
        result = self.invoke("info", "deps", "requests", "--json")
        deps = json.loads(result.output)
        self.assertEqual([d["name"] for d in deps], ["charset-normalizer", "PySocks"])
        self.assertEqual(deps[1]["marker"], 'extra == "socks"')


class TestParseDependency(unittest.TestCase):

    def test_full_requirement(self):
        dep = parse_dependency('requests[socks,security] (>=2.0) ; python_version >= "3.7"')
        self.assertEqual(dep["name"], "requests")
        self.assertEqual(dep["requirement"], ">=2.0")
        self.assertEqual(dep["extras"], "security,socks")
        self.assertEqual(dep["marker"], 'python_version >= "3.7"')

    def test_bare_name(self):
        dep = parse_dependency("idna")
        self.assertEqual((dep["name"], dep["requirement"], dep["extras"], dep["marker"]), ("idna", "", "", ""))

    def test_legacy_requirement(self):
        dep = parse_dependency("foo (1.0)")
        self.assertEqual(dep["name"], "foo")
        self.assertEqual(dep["requirement"], "1.0")


class TestSearchCommand(CliTestCase):

    def test_alias_and_json(self):
        self.client.search_packages.return_value = ApiResponse(data=[{"name": "requests", "version": "2.31.0"}])
        result = self.invoke("s", "requests", "--json")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(json.loads(result.output)[0]["name"], "requests")
        self.client.search_packages.assert_called_once_with("requests", 20)

    def test_nothing_found(self):
        self.client.search_packages.return_value = ApiResponse(data=[])
        result = self.invoke("search", "zzz")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("No packages found", result.output)

    def test_invalid_limit(self):
        result = self.invoke("search", "requests", "--limit", "0")
        self.assertEqual(result.exit_code, 2)


class TestCommandNames(CliTestCase):

    def test_alias_is_case_insensitive(self):
        self.client.get_vulnerabilities.return_value = ApiResponse(data=[])
        result = self.invoke("SEC", "audit", "requests", "--json")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(json.loads(result.output), [])

    def test_unique_prefix(self):
        result = self.invoke("conf", "get")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("No configuration found", result.output)

    def test_ambiguous_prefix(self):
        result = self.invoke("se", "requests")
        self.assertEqual(result.exit_code, 2)
        self.assertIn("Ambiguous command: 'se'. Matches: search, security", result.output)

    def test_default_group_ignores_prefixes(self):
        ctx = click.Context(info)
        self.assertTrue(info.resolves(ctx, "versions"))
        self.assertTrue(info.resolves(ctx, "SHOW"))
        self.assertFalse(info.resolves(ctx, "ver"))


class TestPublishCommands(CliTestCase):

    def setUp(self):
        super().setUp()
        patcher = patch("pypicli.commands.publish.Uploader")
        self.uploader = patcher.start().return_value
        self.addCleanup(patcher.stop)

    def test_check_passes(self):
        self.make_dist("pkg-1.0.0.tar.gz", "pkg-1.0.0-py3-none-any.whl")
        result = self.invoke("publish", "check")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Files checked: 2", result.output)
        self.assertIn("All checks passed. Ready to upload.", result.output)

    def test_check_fails_on_errors(self):
        self.make_dist("pkg-v1.tar.gz")
        result = self.invoke("publish", "check", "dist")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Invalid version (not PEP 440 compliant): v1", result.output)

    def test_dry_run_is_default_subcommand(self):
        self.make_dist("pkg-1.0.0.tar.gz")
        result = self.invoke("publish", "--dry-run")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Dry run mode - no files will be uploaded", result.output)
        self.uploader.upload.assert_not_called()

    def test_no_token(self):
        self.make_dist("pkg-1.0.0.tar.gz")
        result = self.invoke("publish", "-y")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No API token provided", result.output)

    def test_no_files(self):
        result = self.invoke("publish", "-y", "-t", TOKEN)
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Build your package first with: python -m build", result.output)

    def test_spinner_stopped_when_upload_raises(self):
        self.make_dist("pkg-1.0.0.tar.gz")
        self.uploader.upload.side_effect = RuntimeError("boom")
        with patch("pypicli.utils.output.Halo") as halo:
            result = self.invoke("publish", "-y", "-t", TOKEN)

        self.assertIsInstance(result.exception, RuntimeError)
        halo.return_value.start.assert_called_once_with()
        halo.return_value.stop.assert_called_once_with()

    def test_verbose_shows_upload_url(self):
        self.make_dist("pkg-1.0.0.tar.gz")
        result = self.invoke("--verbose", "publish", "--dry-run", "-r", "testpypi")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Upload URL: https://test.pypi.org/legacy/", result.output)

    def test_publish_success(self):
        self.make_dist("pkg-1.0.0.tar.gz", "pkg-1.0.0-py3-none-any.whl")
        self.uploader.upload.return_value = UploadResult(
            success=True, url="https://pypi.org/project/pkg/1.0.0/", status_code=200
        )
        result = self.invoke("publish", "-y", env={"PYPI_API_TOKEN": TOKEN})

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self.uploader.upload.call_count, 2)
        self.assertIn("Published successfully!", result.output)
        self.assertIn("View at: https://pypi.org/project/pkg/1.0.0/", result.output)

    def test_publish_forbidden_stops(self):
        self.make_dist("pkg-1.0.0.tar.gz", "pkg-1.0.0-py3-none-any.whl")
        self.uploader.upload.return_value = UploadResult(
            success=False, message="Authentication failed. Check your API token.", status_code=403,
            error=AuthenticationError(),
        )
        result = self.invoke("--api-token", TOKEN, "publish", "all", "-y")

        self.assertEqual(result.exit_code, 1)
        self.assertEqual(self.uploader.upload.call_count, 1)
        self.assertIn("Authentication failed. Stopping upload.", result.output)
        self.assertIn("0 succeeded, 1 failed, 1 skipped", result.output)

    def test_declined_confirmation(self):
        self.make_dist("pkg-1.0.0.tar.gz")
        result = self.invoke("publish", "-t", TOKEN, input="n\n")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Upload cancelled", result.output)
        self.uploader.upload.assert_not_called()

    def test_upload_conflict(self):
        dist = self.make_dist("pkg-1.0.0.tar.gz")
        self.uploader.upload.return_value = UploadResult(
            success=False, message="File already exists on repository.", status_code=409, error=ConflictError()
        )
        result = self.invoke("publish", "upload", os.path.join(dist, "pkg-1.0.0.tar.gz"), "-t", TOKEN)

        self.assertEqual(result.exit_code, 1)
        self.assertIn("This version already exists on the repository", result.output)
        self.assertIn("Increment the version number and rebuild your package", result.output)


class TestStatsCommands(CliTestCase):

    ROWS = [
        {"category": "with_mirrors", "date": "2024-01-01", "downloads": 999},
        {"category": "without_mirrors", "date": "2024-01-02", "downloads": 200},
        {"category": "without_mirrors", "date": "2024-01-01", "downloads": 100},
    ]

    def test_overview_is_default(self):
        self.client.get_overall_stats.return_value = ApiResponse(data={"data": self.ROWS})
        self.client.get_python_major_stats.return_value = ApiResponse(data={"data": [{"category": "3", "downloads": 10}]})
        self.client.get_system_stats.return_value = ApiResponse(data={"data": []})

        result = self.invoke("stats", "requests", "--json")

        self.assertEqual(result.exit_code, 0, result.output)
        stats = json.loads(result.output)
        self.assertEqual(stats["totalDownloads"], 300)
        self.assertEqual(stats["dailyAverage"], 150)
        self.assertEqual(stats["peakDay"], {"date": "2024-01-02", "downloads": 200})

    def test_no_download_data(self):
        self.client.get_overall_stats.return_value = ApiResponse(data={"data": []})
        result = self.invoke("stats", "downloads", "requests")
        self.assertIn("No download data available for this package", result.output)

    def test_trending_skips_failures(self):
        def overall(name):
            if name == "flask":
                raise PackageNotFoundError()
            bump = 300 if name == "django" else 150
            return ApiResponse(data={"data": [
                {"category": "without_mirrors", "date": "2024-01-01", "downloads": 100},
                {"category": "without_mirrors", "date": "2024-01-02", "downloads": bump},
            ]})
        self.client.get_overall_stats.side_effect = overall

        result = self.invoke("stats", "trending", "-c", "web", "--json")

        trending = json.loads(result.output)["trending"]
        self.assertEqual([t["name"] for t in trending], ["django", "fastapi", "tornado", "pyramid"])
        self.assertEqual(trending[0]["growth"], "+200.0%")
        self.assertEqual(trending[0]["rank"], 1)


class TestStatsHelpers(unittest.TestCase):

    def test_daily_downloads(self):
        points = daily_downloads(TestStatsCommands.ROWS)
        self.assertEqual([p["date"] for p in points], ["2024-01-01", "2024-01-02"])

    def test_aggregate_shares(self):
        rows = [{"category": "3", "downloads": 75}, {"category": "2", "downloads": 25}, {"category": "3", "downloads": 0}]
        self.assertEqual(aggregate_shares(rows), [("3", 75.0), ("2", 25.0)])
        self.assertEqual(aggregate_shares([]), [])

    def test_period_start(self):
        from datetime import date
        today = date(2024, 3, 31)
        self.assertEqual(period_start("last-day", today), date(2024, 3, 30))
        self.assertEqual(period_start("last-week", today), date(2024, 3, 24))
        self.assertEqual(period_start("last-month", today), date(2024, 2, 29))
        self.assertEqual(period_start("recent", today), date(2024, 3, 1))
        self.assertEqual(period_start("last-month", date(2024, 1, 15)), date(2023, 12, 15))


class TestConfigAndTokenCommands(CliTestCase):

    def config_file(self):
        return os.path.join(self.home, ".pypi", "config.json")

    def test_set_and_get(self):
        result = self.invoke("config", "set", "outputFormat", "table")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Configuration updated: outputFormat = table", result.output)
        with open(self.config_file()) as f:
            self.assertEqual(json.load(f), {"outputFormat": "table"})

        result = self.invoke("config", "get")
        self.assertIn('outputFormat: "table"', result.output)

    def test_string_numbers_in_file_reach_client_as_ints(self):
        os.makedirs(os.path.dirname(self.config_file()))
        with open(self.config_file(), "w") as f:
            json.dump({"retries": "3", "timeout": "30000"}, f)

        result = self.invoke("config", "set", "retries", "4")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self.client_class.call_args.kwargs, {"timeout": 30000, "max_retries": 3})
        with open(self.config_file()) as f:
            self.assertEqual(json.load(f), {"retries": 4, "timeout": 30000})

    def test_set_invalid_key(self):
        result = self.invoke("config", "set", "colour", "yes")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Invalid configuration key: colour", result.output)
        self.assertIn("Valid keys: apiToken, repository", result.output)

    def test_get_without_config(self):
        result = self.invoke("config", "get")
        self.assertIn('No configuration found. Run "pypi config init" to create one.', result.output)

    def test_init_without_token(self):
        result = self.invoke("config", "init", input="\n")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("pypi config set apiToken <your-token>", result.output)
        with open(self.config_file()) as f:
            self.assertNotIn("apiToken", json.load(f))

    def test_token_lifecycle(self):
        result = self.invoke("token", "list")
        self.assertIn("No tokens saved in configuration.", result.output)

        result = self.invoke("token", "create", "--name", "ci", input=f"y\n{TOKEN}\n")
        self.assertEqual(result.exit_code, 0, result.output)
        with open(self.config_file()) as f:
            self.assertEqual(json.load(f), {"apiToken": TOKEN, "tokenName": "ci"})

        result = self.invoke("token", "list")
        self.assertIn("Name:  ci", result.output)
        self.assertIn("pypi...AAAA", result.output)
        self.assertNotIn(TOKEN, result.output)

        result = self.invoke("token", "revoke", "--force")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Token removed from", result.output)
        with open(self.config_file()) as f:
            self.assertEqual(json.load(f), {})

    def test_token_not_saved(self):
        result = self.invoke("token", "create", input="n\n")
        self.assertIn("Token not saved. You can set it later with:", result.output)
        self.assertFalse(os.path.exists(self.config_file()))


VULNS = [
    {
        "id": "GHSA-j8r2-6x86-q33q",
        "summary": "Unintended leak of Proxy-Authorization header",
        "database_specific": {"severity": "MODERATE"},
        "affected": [{"ranges": [{"type": "ECOSYSTEM", "events": [{"introduced": "2.3.0"}, {"fixed": "2.31.0"}]}]}],
    },
    {
        "id": "CVE-2018-18074",
        "severity": [{"type": "CVSS_V3", "score": "9.8"}],
        "affected": [{"ranges": [{"events": [{"introduced": "0"}, {"fixed": "2.20.0"}]}]}],
    },
    {"id": "PYSEC-2014-13"},
]


class TestSecurityCommands(CliTestCase):

    def test_audit_severity_filter(self):
        self.client.get_vulnerabilities.return_value = ApiResponse(data=VULNS)
        result = self.invoke("security", "audit", "requests", "--severity", "high", "--json")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual([v["id"] for v in json.loads(result.output)], ["CVE-2018-18074"])

    def test_audit_recommendation(self):
        self.client.get_vulnerabilities.return_value = ApiResponse(data=VULNS)
        result = self.invoke("security", "audit", "requests", "2.19.0")

        self.client.get_vulnerabilities.assert_called_once_with("requests", "2.19.0")
        self.assertIn("Found 3 vulnerabilities:", result.output)
        self.assertIn("https://github.com/advisories/GHSA-j8r2-6x86-q33q", result.output)
        self.assertIn("Upgrade to requests>=2.31.0", result.output)

    def test_audit_clean(self):
        self.client.get_vulnerabilities.return_value = ApiResponse(data=[])
        result = self.invoke("security", "audit", "requests")
        self.assertIn("No known vulnerabilities found.", result.output)

    def test_verify(self):
        self.client.get_package.return_value = ApiResponse(data=PACKAGE)
        self.client.download_file.return_value = b"wheel"
        result = self.invoke("security", "verify", "requests")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Hash verified", result.output)
        self.assertIn("All 1 file(s) verified successfully", result.output)
        self.assertNotIn("Download URL:", result.output)

    def test_verify_verbose_shows_download_url(self):
        self.client.get_package.return_value = ApiResponse(data=PACKAGE)
        self.client.download_file.return_value = b"wheel"
        result = self.invoke("--verbose", "security", "verify", "requests")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Download URL: https://files.example/requests-2.31.0-py3-none-any.whl", result.output)

    def test_verify_mismatch(self):
        self.client.get_package.return_value = ApiResponse(data=PACKAGE)
        self.client.download_file.return_value = b"tampered"
        result = self.invoke("security", "verify", "requests", "--algorithm", "md5")

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Hash mismatch!", result.output)


class TestSecurityHelpers(unittest.TestCase):

    def test_severity(self):
        self.assertEqual(vulnerability_severity(VULNS[0]), "MODERATE")
        self.assertEqual(vulnerability_severity(VULNS[1]), "Critical")
        self.assertEqual(vulnerability_severity(VULNS[2]), "Unknown")
        self.assertEqual(vulnerability_severity({"severity": [{"type": "CVSS_V3", "score": "5.0"}]}), "Medium")

    def test_fixed_version(self):
        self.assertEqual(fixed_version(VULNS[0]), "2.31.0")
        self.assertIsNone(fixed_version(VULNS[2]))

    def test_advisory_url(self):
        self.assertEqual(advisory_url("CVE-2018-18074"), "https://nvd.nist.gov/vuln/detail/CVE-2018-18074")
        self.assertEqual(advisory_url("PYSEC-2014-13"), "https://osv.dev/vulnerability/PYSEC-2014-13")


if __name__ == "__main__":
    unittest.main()
