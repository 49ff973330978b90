"""
Tests for configuration loading.
"""

import tempfile
import shutil
from pathlib import Path

from session_hub.utils.config import ConfigManager, SessionHubConfig

def test_defaults():
    temp_dir = Path(tempfile.mkdtemp())

    try:
        config = SessionHubConfig(data_dir=str(temp_dir / "data"))
        assert (temp_dir / "data").is_dir()
        assert config.server.port == 3101
        assert config.persistence.save_debounce == 2.0
        assert config.thinker.agent_id == "session-thinker"
        assert config.discovery.local_gateway_url == "ws://127.0.0.1:18789"
        assert config.presence.heartbeat_timeout == 300
        assert config.get_data_path("stream-state.json") == str(temp_dir / "data" / "stream-state.json")

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

def test_yaml_file_and_env_overrides(monkeypatch):
    temp_dir = Path(tempfile.mkdtemp())

    try:
        config_path = temp_dir / "session_hub_config.yaml"
        config_path.write_text(
            f"data_dir: {temp_dir / 'data'}\n"
            "server:\n"
            "  port: 5000\n"
            "thinker:\n"
            "  interval: 60\n"
        )
        monkeypatch.setenv("PORT", "4000")
        monkeypatch.setenv("GROQ_API_KEY", "12345")
        monkeypatch.setenv("OPENCLAW_GATEWAY_WS", "ws://a,ws://b")
        monkeypatch.setenv("THINKER_ENABLED", "false")
        monkeypatch.setenv("DEBUG", "1")

        manager = ConfigManager(str(config_path), env_file=str(temp_dir / "missing.env"))
        config = manager.load_config()

        assert config.server.port == 4000
        assert config.thinker.interval == 60
        assert config.thinker.enabled is False
        assert config.reasoning.groq_api_key == "12345"
        assert config.discovery.gateways == ["ws://a", "ws://b"]
        assert config.server.log_level == "DEBUG"

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

def test_save_config_round_trip(monkeypatch):
    temp_dir = Path(tempfile.mkdtemp())

    try:
        monkeypatch.setenv("SESSION_HUB_DATA_DIR", str(temp_dir / "data"))
        monkeypatch.setenv("PUBLIC_URL", "https://hub.example.org")

        manager = ConfigManager(env_file=str(temp_dir / "missing.env"))
        manager.load_config()
        output = temp_dir / "saved.yaml"
        assert manager.save_config(str(output))

        reloaded = ConfigManager(str(output), env_file=str(temp_dir / "missing.env")).load_config()
        assert reloaded.server.public_url == "https://hub.example.org"
        assert reloaded.data_dir == str(temp_dir / "data")

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)
