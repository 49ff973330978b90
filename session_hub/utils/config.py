"""
Configuration Management for Session Hub

Handles configuration loading, validation, and environment setup.
"""

import os
import json
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, field_validator
from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)

class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 3101
    public_url: Optional[str] = None
    log_level: str = "INFO"

class PersistenceConfig(BaseModel):
    """Durable snapshot configuration."""
    state_file: str = "stream-state.json"
    save_debounce: float = 2.0     # seconds
    assistant_log: str = "assistant-log.jsonl"

class ThinkerConfig(BaseModel):
    """Autonomous reasoning loop configuration."""
    enabled: bool = True
    interval: float = 240.0        # seconds
    initial_delay: float = 15.0    # seconds
    agent_id: str = "session-thinker"
    agent_name: str = "Thinker"
    reply_to_messages: bool = True

class ReasoningConfig(BaseModel):
    """Reasoning backend configuration. The first configured backend wins."""
    ollama_base_url: Optional[str] = None
    ollama_model: str = "llama3.2"
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.1-8b-instant"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-5-haiku-20241022"
    assistant_model: Optional[str] = None
    request_timeout: Optional[float] = None

class DiscoveryConfig(BaseModel):
    """Agent discovery configuration."""
    agents_file: str = "agents.json"
    local_agents_dir: str = "~/.openclaw/agents"
    gateways: List[str] = []
    gateway_token: Optional[str] = None
    local_gateway_url: str = "ws://127.0.0.1:18789"
    try_local_gateway: bool = True
    gateway_poll_interval: float = 15.0   # seconds
    reconnect_delay: float = 10.0         # seconds
    registry_url: Optional[str] = None
    registry_poll_interval: float = 300.0 # seconds

    @field_validator('gateways', mode='before')
    @classmethod
    def split_gateways(cls, v):
        """Accept a comma separated string as well as a list."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(',') if s.strip()]
        return v

class PresenceConfig(BaseModel):
    """Agent presence configuration."""
    heartbeat_timeout: int = 300   # seconds
    sweep_interval: int = 60       # seconds

class MemoryRecallConfig(BaseModel):
    """Long-term memory recall service configuration."""
    api_key: Optional[str] = None
    api_url: str = "https://api.memu.so"

class SessionHubConfig(BaseModel):
    """Main configuration for Session Hub."""

    # Data directory for the snapshot file, logs and assistant log
    data_dir: str = "./data"

    # Component configurations
    server: ServerConfig = ServerConfig()
    persistence: PersistenceConfig = PersistenceConfig()
    thinker: ThinkerConfig = ThinkerConfig()
    reasoning: ReasoningConfig = ReasoningConfig()
    discovery: DiscoveryConfig = DiscoveryConfig()
    presence: PresenceConfig = PresenceConfig()
    memory_recall: MemoryRecallConfig = MemoryRecallConfig()

    # Environment
    environment: str = "development"

    @field_validator('data_dir')
    @classmethod
    def validate_data_dir(cls, v):
        """Ensure data directory exists."""
        Path(v).mkdir(parents=True, exist_ok=True)
        return v

    def get_data_path(self, file_name: str) -> str:
        """Get full path for a file in the data directory."""
        return str(Path(self.data_dir) / file_name)

class ConfigManager:
    """Manages configuration loading and validation."""

    # Environment variable mappings
    ENV_MAPPINGS = {
        'SESSION_HUB_DATA_DIR': 'data_dir',
        'SESSION_HUB_ENVIRONMENT': 'environment',
        'SESSION_HUB_HOST': 'server.host',
        'SESSION_HUB_PORT': 'server.port',
        'PORT': 'server.port',
        'PUBLIC_URL': 'server.public_url',
        'SESSION_HUB_LOG_LEVEL': 'server.log_level',
        'LOG_LEVEL': 'server.log_level',
        'SESSION_HUB_SAVE_DEBOUNCE': 'persistence.save_debounce',
        'THINKER_ENABLED': 'thinker.enabled',
        'SESSION_HUB_THINKER_INTERVAL': 'thinker.interval',
        'OLLAMA_BASE_URL': 'reasoning.ollama_base_url',
        'OLLAMA_MODEL': 'reasoning.ollama_model',
        'GROQ_API_KEY': 'reasoning.groq_api_key',
        'GROQ_MODEL': 'reasoning.groq_model',
        'ANTHROPIC_API_KEY': 'reasoning.anthropic_api_key',
        'ANTHROPIC_MODEL': 'reasoning.anthropic_model',
        'ASSISTANT_MODEL': 'reasoning.assistant_model',
        'OPENCLAW_GATEWAY_WS': 'discovery.gateways',
        'OPENCLAW_GATEWAY_TOKEN': 'discovery.gateway_token',
        'REGISTRY_URL': 'discovery.registry_url',
        'REGISTRY_POLL_INTERVAL': 'discovery.registry_poll_interval',
        'SESSION_HUB_HEARTBEAT_TIMEOUT': 'presence.heartbeat_timeout',
        'MEMU_API_KEY': 'memory_recall.api_key',
        'MEMU_API_URL': 'memory_recall.api_url',
    }

    # Values passed through without type conversion
    RAW_STRING_PATHS = {
        'reasoning.groq_api_key',
        'reasoning.anthropic_api_key',
        'discovery.gateway_token',
        'memory_recall.api_key',
        'discovery.gateways',
    }

    def __init__(self, config_path: Optional[str] = None,
                 env_file: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file
            env_file: Path to .env file
        """
        self.config_path = config_path
        self.env_file = env_file or ".env"
        self.config: Optional[SessionHubConfig] = None

    def load_config(self) -> SessionHubConfig:
        """Load configuration from file and environment."""
        # Load environment variables
        if Path(self.env_file).exists():
            load_dotenv(self.env_file)

        config_data = {}

        # Load from config file if provided
        if self.config_path and Path(self.config_path).exists():
            config_data = self._load_config_file(self.config_path) or {}

        # Override with environment variables
        config_data = self._apply_env_overrides(config_data)

        # Create and validate configuration
        self.config = SessionHubConfig(**config_data)

        logger.info(f"Configuration loaded: {self.config.environment} environment")
        return self.config

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from JSON or YAML file."""
        path = Path(config_path)

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f)
                elif path.suffix.lower() == '.json':
                    return json.load(f)
                else:
                    raise ValueError(f"Unsupported config file format: {path.suffix}")

        except Exception as e:
            logger.error(f"Failed to load config file {config_path}: {e}")
            return {}

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        for env_var, config_path in self.ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_config(config_data, config_path, env_value)

        # DEBUG=1 is the conventional switch for verbose logs
        if os.getenv('DEBUG', '').lower() in ['1', 'true']:
            self._set_nested_config(config_data, 'server.log_level', 'DEBUG')

        return config_data

    def _set_nested_config(self, config: Dict[str, Any],
                          path: str, value: str) -> None:
        """Set a nested configuration value."""
        keys = path.split('.')
        current = config

        # Navigate to the parent of the target key
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        # Set the final value, with type conversion
        final_key = keys[-1]

        if path in self.RAW_STRING_PATHS:
            current[final_key] = value
        elif value.lower() in ['true', 'false']:
            current[final_key] = value.lower() == 'true'
        elif value.isdigit():
            current[final_key] = int(value)
        else:
            try:
                current[final_key] = float(value)
            except ValueError:
                current[final_key] = value

    def save_config(self, output_path: str) -> bool:
        """Save current configuration to file."""
        if not self.config:
            logger.error("No configuration loaded to save")
            return False

        try:
            path = Path(output_path)
            config_dict = self.config.model_dump()

            with open(path, 'w') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    yaml.dump(config_dict, f, default_flow_style=False, indent=2)
                else:
                    json.dump(config_dict, f, indent=2)

            logger.info(f"Configuration saved to {output_path}")
            return True

        except Exception as e:
            logger.error(f"Failed to save configuration: {e}")
            return False

    def get_config(self) -> SessionHubConfig:
        """Get the current configuration."""
        if self.config is None:
            self.config = self.load_config()
        return self.config

# Global configuration instance
_config_manager = ConfigManager()

def get_config() -> SessionHubConfig:
    """Get the global configuration instance."""
    return _config_manager.get_config()

def load_config(config_path: Optional[str] = None,
                env_file: Optional[str] = None) -> SessionHubConfig:
    """Load configuration with custom paths."""
    global _config_manager
    _config_manager = ConfigManager(config_path, env_file)
    return _config_manager.load_config()

def setup_logging(config: SessionHubConfig) -> None:
    """Setup logging based on configuration."""
    level = getattr(logging, config.server.log_level.upper(), logging.INFO)

    # Create data directory for logs
    log_dir = Path(config.data_dir) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    # Configure logging
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "session_hub.log")
        ]
    )

    logger.info(f"Logging configured at {config.server.log_level} level")
