"""
Tests for configuration loading: environment, .env files, JSON config files
and the CLI commands that manage them.
"""

import json
import os
from urllib.parse import urlsplit

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_intel.cli import (
    EXIT_INVALID_INPUT,
    create_parser,
    load_config_from_file,
    main,
    save_config_to_file,
)
from domain_intel.config import (
    ApiCredentials,
    ProviderEndpoints,
    SystemConfig,
    load_config_from_env,
    parse_key_list,
)


@pytest.fixture
def clean_env(monkeypatch):
    """Run with an empty process environment so .env values do not leak."""
    monkeypatch.setattr(os, "environ", {})


key_tokens = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=12)


class TestKeyListParsingProperty:
    """Key lists keep their order and drop duplicates."""

    @given(keys=st.lists(key_tokens, max_size=8), separator=st.sampled_from([",", ";", " ", ", ", "\n"]))
    @settings(max_examples=100)
    def test_order_kept_duplicates_dropped(self, keys: list, separator: str) -> None:
        parsed = parse_key_list(separator.join(keys))
        assert parsed == list(dict.fromkeys(keys))

    @pytest.mark.parametrize("value", [None, "", "  ", ",;,"])
    def test_empty_values(self, value) -> None:
        assert parse_key_list(value) == []


class TestEnvironmentConfig:
    def test_dotenv_file_loaded(self, clean_env, tmp_path) -> None:
        dotenv = tmp_path / ".env"
        dotenv.write_text(
            "VIRUSTOTAL_API_KEY=vt-key\n"
            "ABUSEIPDB_API_KEY=abuse-key\n"
            "IPQS_API_KEYS=k1,k2;k3\n"
            "IPQS_API_KEY=k2 k4\n"
            "DNSBL_URL=https://dnsbl.test/check\n"
            "DOMAIN_INTEL_LANGUAGE=DE\n"
            "DOMAIN_INTEL_TIMEOUT=2.5\n",
            encoding="utf-8",
        )

        config = load_config_from_env(str(dotenv))

        assert config.credentials.reputation_api_key == "vt-key"
        assert config.credentials.abuse_api_key == "abuse-key"
        assert config.credentials.fraud_api_keys == ["k1", "k2", "k3", "k4"]
        assert config.endpoints.dnsbl_url == "https://dnsbl.test/check"
        assert config.language == "de"
        assert config.provider_timeout == 2.5

    def test_process_environment_wins_over_dotenv(self, clean_env, tmp_path) -> None:
        dotenv = tmp_path / ".env"
        dotenv.write_text("ABUSEIPDB_API_KEY=from-file\n", encoding="utf-8")
        os.environ["ABUSEIPDB_API_KEY"] = "from-env"

        assert load_config_from_env(str(dotenv)).credentials.abuse_api_key == "from-env"

    def test_defaults_and_bad_values(self, clean_env, tmp_path) -> None:
        dotenv = tmp_path / ".env"
        dotenv.write_text("DOMAIN_INTEL_LANGUAGE=fr\nDOMAIN_INTEL_TIMEOUT=soon\n", encoding="utf-8")

        config = load_config_from_env(str(dotenv))

        assert config.language == "en"
        assert config.provider_timeout == 8.0
        assert config.credentials.reputation_api_key is None
        assert config.credentials.fraud_api_keys == []


class TestConfigFile:
    def test_save_then_load_keeps_settings_not_credentials(self, tmp_path) -> None:
        config = SystemConfig(
            credentials=ApiCredentials(reputation_api_key="secret", fraud_api_keys=["k1"]),
            provider_timeout=4.0,
            language="de",
        )
        config.mirrors.mirrors = ["https://mirror.test/?u={url}"]
        path = tmp_path / "nested" / "config.json"

        assert save_config_to_file(config, path)
        assert "secret" not in path.read_text(encoding="utf-8")

        loaded = load_config_from_file(path)
        assert loaded.language == "de"
        assert loaded.provider_timeout == 4.0
        assert loaded.mirrors.mirrors == ["https://mirror.test/?u={url}"]
        assert loaded.credentials == ApiCredentials()

    def test_empty_file_credentials_keep_defaults(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"credentials": {"abuse_api_key": "", "reputation_api_key": "file-key"}}))
        defaults = SystemConfig(credentials=ApiCredentials(abuse_api_key="env-key"))

        loaded = load_config_from_file(path, defaults=defaults)

        assert loaded.credentials.abuse_api_key == "env-key"
        assert loaded.credentials.reputation_api_key == "file-key"

    def test_invalid_file_returns_none(self, tmp_path, capsys) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json")

        assert load_config_from_file(path) is None
        assert capsys.readouterr().err

    def test_unknown_section_field_returns_none(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"logging": {"colour": True}}))

        assert load_config_from_file(path) is None


class TestCliCommands:
    def test_invalid_domain_exit_code(self, clean_env, capsys) -> None:
        assert main(["scan", "bad domain!"]) == EXIT_INVALID_INPUT
        assert "Invalid Input" in capsys.readouterr().err

    def test_config_init_and_show(self, clean_env, tmp_path, capsys) -> None:
        path = tmp_path / "config.json"

        assert main(["config", "init", "--path", str(path), "--language", "de"]) == 0
        assert main(["config", "init", "--path", str(path)]) == 1
        assert main(["config", "init", "--path", str(path), "--force"]) == 0
        assert main(["config", "show", "--path", str(path)]) == 0

        out = capsys.readouterr().out
        assert "Language: en" in out
        assert "Reputation key: no" in out

    def test_config_show_missing_file(self, clean_env, tmp_path) -> None:
        assert main(["config", "show", "--path", str(tmp_path / "missing.json")]) == 1

    def test_check_keys_without_keys(self, clean_env) -> None:
        assert main(["check-keys"]) == 1

    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == 0
        assert "domain-intel" in capsys.readouterr().out

    def test_serve_default_port_differs_from_blacklist_service(self) -> None:
        args = create_parser().parse_args(["serve"])
        assert args.port == 8080
        assert args.port != urlsplit(ProviderEndpoints().dnsbl_url).port
