"""
Contract tests for UplinkConfig loading and validation.
"""

import os
from unittest.mock import patch

import pytest

from uplink.config import DEFAULT_FORMATS, UplinkConfig


@pytest.fixture
def clean_env(tmp_path):
    """Environment without UPLINK_* variables; restored after the test."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("UPLINK_")}
    env["UPLINK_ENV_FILE"] = str(tmp_path / "missing.env")
    with patch.dict(os.environ, env, clear=True):
        yield tmp_path


class TestLoadConfig:

    def test_defaults(self, clean_env):
        config = UplinkConfig.load_config()
        assert config.ffmpeg_path == "ffmpeg"
        assert config.default_port == 8000
        assert config.default_formats == DEFAULT_FORMATS
        assert config.encoder_startup_sec == 3.0
        assert config.device_preflight is True
        assert config.status_url is None
        assert config.icecast_root is None

    def test_environment_overrides(self, clean_env):
        os.environ.update({
            "UPLINK_FFMPEG_PATH": "/opt/ffmpeg/bin/ffmpeg",
            "UPLINK_DEFAULT_PORT": "8010",
            "UPLINK_DEFAULT_FORMATS": "OGG, mp3",
            "UPLINK_STOP_GRACE_SEC": "2.5",
            "UPLINK_DEVICE_PREFLIGHT": "no",
            "UPLINK_STATUS_URL": "http://dashboard.local/events",
            "UPLINK_LOG_FILE": "",
        })

        config = UplinkConfig.load_config()

        assert config.ffmpeg_path == "/opt/ffmpeg/bin/ffmpeg"
        assert config.default_port == 8010
        assert config.default_formats == ["ogg", "mp3"]
        assert config.stop_grace_sec == 2.5
        assert config.device_preflight is False
        assert config.status_url == "http://dashboard.local/events"
        assert config.log_file is None

    def test_env_file_is_loaded_without_overriding(self, clean_env):
        env_file = clean_env / "uplink.env"
        env_file.write_text("UPLINK_DEFAULT_PORT=8200\nUPLINK_SOURCE_HOST=10.0.0.5\n")
        os.environ["UPLINK_ENV_FILE"] = str(env_file)
        os.environ["UPLINK_SOURCE_HOST"] = "192.168.1.2"

        config = UplinkConfig.load_config()

        assert config.default_port == 8200
        assert config.source_host == "192.168.1.2", "Existing environment must win over the env file"

    @pytest.mark.parametrize("name,value", [
        ("UPLINK_DEFAULT_PORT", "eighty"),
        ("UPLINK_DEFAULT_PORT", "70000"),
        ("UPLINK_ENCODER_STARTUP_SEC", "0"),
        ("UPLINK_DEFAULT_FORMATS", "flac"),
        ("UPLINK_DEFAULT_FORMATS", " , "),
        ("UPLINK_DEFAULT_CHANNELS", "6"),
        ("UPLINK_LOG_LEVEL", "LOUD"),
    ])
    def test_invalid_values_raise(self, clean_env, name, value):
        os.environ[name] = value
        with pytest.raises(ValueError):
            UplinkConfig.load_config()


class TestValidate:

    def test_negative_settle_rejected(self):
        with pytest.raises(ValueError):
            UplinkConfig(restart_settle_sec=-1).validate()

    def test_zero_settle_allowed(self):
        UplinkConfig(restart_settle_sec=0).validate()
