import json
import os
import stat
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from pypicli.core.config import Config, mask_api_token, parse_value, user_config_path
from pypicli.core.errors import ConfigError

TOKEN = "pypi-AgEIcHlwaS5vcmcCJGFiY2RlZg"


class ConfigTestCase(unittest.TestCase):
    """Runs every test with a temporary HOME and working directory."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.home = Path(self.tmp.name, "home")
        self.work = Path(self.tmp.name, "work")
        self.home.mkdir()
        self.work.mkdir()

        env = {k: v for k, v in os.environ.items() if not k.startswith("PYPI_")}
        env["HOME"] = str(self.home)
        patcher = patch.dict(os.environ, env, clear=True)
        patcher.start()
        self.addCleanup(patcher.stop)

        cwd = os.getcwd()
        os.chdir(self.work)
        self.addCleanup(os.chdir, cwd)

    def write_user_config(self, data):
        path = self.home / ".pypi" / "config.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data))
        return path


class TestConfigLoading(ConfigTestCase):

    def test_defaults(self):
        config = Config()
        self.assertIsNone(config.path)
        self.assertEqual(config.get("outputFormat"), "pretty")
        self.assertEqual(config.get("retries"), 3)
        self.assertIsNone(config.get_api_token())

    def test_user_file(self):
        self.write_user_config({"apiToken": TOKEN, "outputFormat": "json"})
        config = Config()
        self.assertEqual(config.path, user_config_path())
        self.assertEqual(config.get("outputFormat"), "json")
        self.assertEqual(config.get_api_token(), TOKEN)

    def test_project_file_wins(self):
        self.write_user_config({"outputFormat": "json"})
        (self.work / ".pypi.json").write_text(json.dumps({"outputFormat": "table"}))
        self.assertEqual(Config().get("outputFormat"), "table")

    def test_invalid_file_is_ignored(self):
        path = self.write_user_config({})
        path.write_text("{not json")
        with self.assertLogs("pypicli.core.config", level="WARNING"):
            config = Config()
        self.assertEqual(config.file_config, {})

    def test_environment_overrides_file(self):
        self.write_user_config({"apiToken": TOKEN, "outputFormat": "json"})
        os.environ["PYPI_API_TOKEN"] = "pypi-from-env"
        os.environ["PYPI_OUTPUT_FORMAT"] = "table"
        config = Config()
        self.assertEqual(config.get_api_token(), "pypi-from-env")
        self.assertEqual(config.get("outputFormat"), "table")
        self.assertEqual(config.get_api_token("pypi-override"), "pypi-override")

    def test_invalid_env_output_format_is_ignored(self):
        os.environ["PYPI_OUTPUT_FORMAT"] = "xml"
        with self.assertLogs("pypicli.core.config", level="WARNING"):
            config = Config()
        self.assertEqual(config.get("outputFormat"), "pretty")

    def test_numeric_strings_in_file_are_coerced(self):
        self.write_user_config({"retries": "5", "timeout": "15000", "colorOutput": "false"})
        config = Config()
        self.assertEqual(config.get("retries"), 5)
        self.assertEqual(config.get("timeout"), 15000)
        self.assertIs(config.get("colorOutput"), False)

    def test_bad_values_in_file_fall_back_to_defaults(self):
        self.write_user_config({"retries": "many", "timeout": [1], "colorOutput": 3, "outputFormat": "xml"})
        with self.assertLogs("pypicli.core.config", level="WARNING") as logs:
            config = Config()
        self.assertEqual(len(logs.output), 4)
        self.assertEqual(config.get("retries"), 3)
        self.assertEqual(config.get("timeout"), 30000)
        self.assertIs(config.get("colorOutput"), True)
        self.assertEqual(config.get("outputFormat"), "pretty")

    def test_set_repairs_bad_file_value(self):
        path = self.write_user_config({"retries": "many"})
        with self.assertLogs("pypicli.core.config", level="WARNING"):
            config = Config()
        config.set("retries", "4")
        config.save()
        self.assertEqual(json.loads(path.read_text()), {"retries": 4})


class TestConfigWriting(ConfigTestCase):

    def test_set_and_save(self):
        config = Config()
        config.set("timeout", "5000")
        config.set("apiToken", TOKEN)
        path = config.save()

        self.assertEqual(path, self.home / ".pypi" / "config.json")
        self.assertEqual(json.loads(path.read_text()), {"timeout": 5000, "apiToken": TOKEN})
        self.assertEqual(stat.S_IMODE(os.stat(path).st_mode), 0o600)
        self.assertEqual(stat.S_IMODE(os.stat(path.parent).st_mode), 0o700)

    def test_save_keeps_other_keys(self):
        self.write_user_config({"repository": "testpypi", "apiToken": TOKEN})
        config = Config()
        config.unset("apiToken")
        config.set("retries", "5")
        path = config.save()

        self.assertEqual(json.loads(path.read_text()), {"repository": "testpypi", "retries": 5})
        self.assertIsNone(config.get_api_token())

    def test_set_rejects_unknown_keys_and_bad_values(self):
        config = Config()
        with self.assertRaises(ConfigError):
            config.set("colour", "yes")
        with self.assertRaises(ConfigError):
            config.set("timeout", "soon")
        with self.assertRaises(ConfigError):
            config.set("outputFormat", "xml")

    def test_init(self):
        path = Config().init(TOKEN)
        data = json.loads(path.read_text())
        self.assertEqual(data["apiToken"], TOKEN)
        self.assertEqual(data["outputFormat"], "pretty")
        self.assertTrue(data["colorOutput"])

        self.assertNotIn("apiToken", json.loads(Config().init().read_text()))

    def test_display_masks_token(self):
        self.write_user_config({"apiToken": TOKEN})
        config = Config()
        self.assertEqual(config.display()["apiToken"], "pypi...RlZg")
        self.assertNotIn(TOKEN, str(config))


class TestHelpers(unittest.TestCase):

    def test_mask(self):
        self.assertEqual(mask_api_token("pypi-1234567890"), "pypi...7890")
        self.assertEqual(mask_api_token("short"), "short")

    def test_parse_value(self):
        self.assertIs(parse_value("colorOutput", "TRUE"), True)
        self.assertIs(parse_value("colorOutput", "off"), False)
        self.assertEqual(parse_value("retries", "2"), 2)
        self.assertEqual(parse_value("repository", "testpypi"), "testpypi")
        with self.assertRaises(ConfigError):
            parse_value("retries", "-1")


if __name__ == "__main__":
    unittest.main()
