"""Configuration, secret store and .env loading."""

import json
import os
import plistlib
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from swiftchat.capabilities.interfaces import ChatModel
from swiftchat.common.dotenv import load_dotenv
from swiftchat.common.secrets import SecretStore, get_config_value
from swiftchat.core.config import DEFAULT_SYSTEM_PROMPT, DOTENV_ALLOW_KEYS, DOTENV_ALLOW_PREFIXES, ConfigManager


class TempDirTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory(prefix="swiftchat-test-")
        self.tmp = Path(self._tmp.name)
        # isolate from the developer's environment
        self._env = mock.patch.dict(os.environ, {}, clear=False)
        self._env.start()
        for key in list(os.environ):
            if key.startswith("SWIFTCHAT_") or key.startswith("OPENAI_"):
                del os.environ[key]

    def tearDown(self):
        self._env.stop()
        self._tmp.cleanup()


class TestConfigManager(TempDirTestCase):
    def test_missing_file_is_created_with_defaults(self):
        cfg = ConfigManager(repo_root=self.tmp).load()

        self.assertEqual(cfg.system_prompt, DEFAULT_SYSTEM_PROMPT)
        self.assertIs(cfg.default_model, ChatModel.GPT3_5_TURBO)
        self.assertEqual(cfg.llm.mode, "remote")
        written = json.loads((self.tmp / "config" / "swiftchat.json").read_text(encoding="utf-8"))
        self.assertEqual(written["default_model"], "gpt-3.5-turbo")

    def test_file_values_are_used(self):
        path = self.tmp / "config" / "swiftchat.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"system_prompt": "Be terse.", "default_model": "gpt-4", "llm": {"mode": "mock"}}))

        cfg = ConfigManager(repo_root=self.tmp).load()

        self.assertEqual(cfg.system_prompt, "Be terse.")
        self.assertIs(cfg.default_model, ChatModel.GPT4)
        self.assertEqual(cfg.llm.mode, "mock")

    def test_corrupt_file_is_backed_up_and_healed(self):
        path = self.tmp / "config" / "swiftchat.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        cfg = ConfigManager(repo_root=self.tmp).load()

        self.assertEqual(cfg.system_prompt, DEFAULT_SYSTEM_PROMPT)
        backups = list(path.parent.glob("swiftchat.json.bad-*"))
        self.assertEqual(len(backups), 1)
        self.assertEqual(backups[0].read_text(), "{not json")
        json.loads(path.read_text(encoding="utf-8"))

    def test_environment_overrides_file(self):
        os.environ["SWIFTCHAT_SYSTEM_PROMPT"] = "From env."
        os.environ["SWIFTCHAT_DEFAULT_MODEL"] = "gpt-4"
        os.environ["SWIFTCHAT_LLM_MODE"] = "MOCK"
        os.environ["SWIFTCHAT_LLM_TIMEOUT_S"] = "12.5"

        cfg = ConfigManager(repo_root=self.tmp).load()

        self.assertEqual(cfg.system_prompt, "From env.")
        self.assertIs(cfg.default_model, ChatModel.GPT4)
        self.assertEqual(cfg.llm.mode, "mock")
        self.assertEqual(cfg.llm.timeout_s, 12.5)

    def test_bad_environment_values_are_ignored(self):
        os.environ["SWIFTCHAT_LLM_TIMEOUT_S"] = "soon"
        os.environ["SWIFTCHAT_DEFAULT_MODEL"] = "gpt-9"

        cfg = ConfigManager(repo_root=self.tmp).load()

        self.assertEqual(cfg.llm.timeout_s, 30.0)
        self.assertIs(cfg.default_model, ChatModel.GPT3_5_TURBO)

    def test_only_invalid_overrides_are_skipped(self):
        os.environ["SWIFTCHAT_LLM_TIMEOUT_S"] = "soon"
        os.environ["SWIFTCHAT_LLM_MODE"] = "mock"
        os.environ["SWIFTCHAT_SYSTEM_PROMPT"] = "Kept."

        cfg = ConfigManager(repo_root=self.tmp).load()

        self.assertEqual(cfg.llm.timeout_s, 30.0)
        self.assertEqual(cfg.llm.mode, "mock")
        self.assertEqual(cfg.system_prompt, "Kept.")

    def test_default_model_accepts_member_name(self):
        os.environ["SWIFTCHAT_DEFAULT_MODEL"] = "GPT4"
        os.environ["SWIFTCHAT_LLM_MODE"] = "mock"

        cfg = ConfigManager(repo_root=self.tmp).load()

        self.assertIs(cfg.default_model, ChatModel.GPT4)
        self.assertEqual(cfg.llm.mode, "mock")

    def test_settings_from_dotenv_reach_config(self):
        env_file = self.tmp / ".env"
        env_file.write_text(
            "SWIFTCHAT_SYSTEM_PROMPT=Rhyme.\n"
            "SWIFTCHAT_DEFAULT_MODEL=gpt-4\n"
            "SWIFTCHAT_LLM_MODE=mock\n"
            "OPENAI_API_KEY=sk-dotenv\n",
            encoding="utf-8",
        )

        load_dotenv(env_file, allow_keys=DOTENV_ALLOW_KEYS, allow_prefixes=DOTENV_ALLOW_PREFIXES)
        cfg = ConfigManager(repo_root=self.tmp).load()

        self.assertEqual(cfg.system_prompt, "Rhyme.")
        self.assertIs(cfg.default_model, ChatModel.GPT4)
        self.assertEqual(cfg.llm.mode, "mock")
        self.assertEqual(SecretStore(self.tmp / "absent.plist").api_key, "sk-dotenv")

    def test_config_path_from_environment(self):
        os.environ["SWIFTCHAT_CONFIG_PATH"] = "elsewhere/custom.json"
        ConfigManager(repo_root=self.tmp).load()
        self.assertTrue((self.tmp / "elsewhere" / "custom.json").is_file())


class TestSecretStore(TempDirTestCase):
    def write_plist(self, data):
        path = self.tmp / "secrets.plist"
        with path.open("wb") as fh:
            plistlib.dump(data, fh)
        return path

    def test_reads_credentials_from_plist(self):
        path = self.write_plist({"OPENAI_API_KEY": "sk-plist", "OPENAI_ORG_ID": "org-plist"})
        store = SecretStore(path)
        self.assertEqual(store.api_key, "sk-plist")
        self.assertEqual(store.organization, "org-plist")

    def test_missing_file_and_keys_resolve_to_empty_string(self):
        self.assertEqual(SecretStore(self.tmp / "absent.plist").api_key, "")
        store = SecretStore(self.write_plist({"OTHER": "x", "OPENAI_ORG_ID": 42}))
        self.assertEqual(store.api_key, "")
        self.assertEqual(store.organization, "")

    def test_unreadable_file_resolves_to_empty_string(self):
        path = self.tmp / "secrets.plist"
        path.write_bytes(b"\x00garbage")
        self.assertEqual(SecretStore(path).api_key, "")

    def test_environment_wins_over_plist(self):
        path = self.write_plist({"OPENAI_API_KEY": "sk-plist"})
        store = SecretStore(path, environ={"OPENAI_API_KEY": "sk-env"})
        self.assertEqual(store.api_key, "sk-env")

    def test_get_config_value(self):
        path = self.write_plist({"OPENAI_API_KEY": "sk-plist"})
        self.assertEqual(get_config_value("OPENAI_API_KEY", path), "sk-plist")
        self.assertEqual(get_config_value("MISSING", path), "")


class TestDotenv(TempDirTestCase):
    def test_load_dotenv_filters_and_keeps_existing(self):
        env_file = self.tmp / ".env"
        env_file.write_text(
            "# comment\n"
            "export SWIFTCHAT_TOKEN='secret'\n"
            "OPENAI_API_KEY=\"sk-dotenv\"\n"
            "UNRELATED=1\n"
            "SWIFTCHAT_LLM_MODE=mock\n"
            "not a pair\n",
            encoding="utf-8",
        )
        os.environ["SWIFTCHAT_LLM_MODE"] = "remote"

        loaded = load_dotenv(env_file, allow_keys={"SWIFTCHAT_TOKEN", "OPENAI_API_KEY"}, allow_prefixes={"SWIFTCHAT_LLM_"})

        self.assertTrue(loaded)
        self.assertEqual(os.environ["SWIFTCHAT_TOKEN"], "secret")
        self.assertEqual(os.environ["OPENAI_API_KEY"], "sk-dotenv")
        self.assertEqual(os.environ["SWIFTCHAT_LLM_MODE"], "remote")
        self.assertNotIn("UNRELATED", os.environ)

    def test_missing_file(self):
        self.assertFalse(load_dotenv(self.tmp / "nope.env"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
