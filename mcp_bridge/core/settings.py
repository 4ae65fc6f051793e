# mcp_bridge/core/settings.py
from pydantic import SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Centralized configuration management using Pydantic.
    Reads from .env file and environment variables.
    """
    # --- Sensitive Data ---
    SLACK_BOT_TOKEN: SecretStr = SecretStr("")
    SLACK_SIGNING_SECRET: SecretStr = SecretStr("")
    GOOGLE_API_KEY: SecretStr = SecretStr("")

    # --- Slack Config ---
    SLACK_API_URL: str = "https://slack.com/api"
    SLACK_SEND_TIMEOUT_SECONDS: float = 20

    # --- Application Settings ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # Empty disables the file handler
    INTERACTIONS_DB_PATH: str = "interactions.json"

    # --- MCP Settings ---
    MCP_PROBE_TIMEOUT_SECONDS: float = 5
    MCP_DISCOVERY_TIMEOUT_SECONDS: float = 30
    MCP_DEFAULT_TOOL_TIMEOUT_SECONDS: float = 30
    MCP_REFRESH_INTERVAL_MINUTES: int = Field(30, ge=0)  # 0 disables the refresh job
    ENABLE_BUILTIN_TOOLS: bool = True

    # --- Channel Defaults ---
    DEFAULT_CHANNEL_AUTO_RESPOND: bool = False

    # --- LLM Model Settings ---
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_TEMPERATURE: float = 0.7
    GEMINI_MAX_TOOL_ROUNDTRIPS: int = Field(3, ge=0)  # 0 disables function calling

    # Pydantic V2 Config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        extra='ignore'
    )

# Create a singleton instance
try:
    settings = Settings()
except Exception as e:
    print(f"CRITICAL: Error loading configuration. Check your .env file. Error: {e}")
    import sys
    sys.exit(1)
