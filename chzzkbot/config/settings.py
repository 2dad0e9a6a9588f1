"""
Global configuration management for the CHZZK Command Chatbot.

This module handles loading and validation of environment variables
and global application settings.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BOT_MODE_MULTI = "multi"
BOT_MODE_SINGLE = "single"

DEFAULT_API_URL = "https://openapi.chzzk.naver.com"


class MissingSingleTenantConfig(ValueError):
    """Raised when single-tenant mode is selected without its owner settings."""
    pass


@dataclass
class GlobalConfig:
    """Global configuration settings loaded from environment variables."""

    # Required fields (no defaults)
    chzzk_client_id: str
    chzzk_client_secret: str
    firebase_project_id: str
    firebase_client_email: str
    firebase_private_key: str
    log_level: str
    log_format: str

    # Optional fields (with defaults)
    chzzk_api_url: str = DEFAULT_API_URL
    bot_mode: str = BOT_MODE_MULTI
    owner_id: Optional[str] = None
    refresh_token: Optional[str] = None
    owners_collection: str = "users"
    commands_collection: str = "commands"
    command_refresh_interval: float = 30.0
    fleet_scan_interval: float = 60.0
    reconnect_delay: float = 5.0
    connect_timeout: float = 10.0
    http_timeout: float = 30.0
    log_file: Optional[str] = None

    @property
    def is_single_tenant(self) -> bool:
        return self.bot_mode == BOT_MODE_SINGLE

    def service_account_info(self) -> dict:
        """Build the Firestore service-account mapping from the env credentials."""
        return {
            'type': 'service_account',
            'project_id': self.firebase_project_id,
            'client_email': self.firebase_client_email,
            'private_key': self.firebase_private_key,
            'token_uri': 'https://oauth2.googleapis.com/token',
        }


def _get_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_global_config() -> GlobalConfig:
    """
    Load global configuration from environment variables.

    Returns:
        GlobalConfig: Loaded configuration

    Raises:
        MissingSingleTenantConfig: If BOT_MODE=single lacks owner settings
        ValueError: If other required environment variables are missing or invalid
    """
    # Load environment variables from .env file if present
    load_dotenv()

    # CHZZK application credentials
    client_id = os.getenv('CHZZK_CLIENT_ID') or os.getenv('CLIENT_ID')
    client_secret = os.getenv('CHZZK_CLIENT_SECRET') or os.getenv('CLIENT_SECRET')

    if not client_id or not client_secret:
        raise ValueError(
            "CHZZK configuration incomplete. Required: CHZZK_CLIENT_ID, "
            "CHZZK_CLIENT_SECRET"
        )

    api_url = os.getenv('CHZZK_API_URL', DEFAULT_API_URL).rstrip('/')

    # Firestore service account
    project_id = os.getenv('FIREBASE_PROJECT_ID')
    client_email = os.getenv('FIREBASE_CLIENT_EMAIL')
    private_key = os.getenv('FIREBASE_PRIVATE_KEY')

    if not all([project_id, client_email, private_key]):
        raise ValueError(
            "Firebase configuration incomplete. Required: FIREBASE_PROJECT_ID, "
            "FIREBASE_CLIENT_EMAIL, FIREBASE_PRIVATE_KEY"
        )

    # Keys pasted into .env files usually carry escaped newlines
    private_key = private_key.replace('\\n', '\n')

    # Tenancy
    bot_mode = os.getenv('BOT_MODE', BOT_MODE_MULTI).lower()
    owner_id = os.getenv('BOT_OWNER_ID')
    refresh_token = os.getenv('CHZZK_REFRESH_TOKEN')

    if bot_mode == BOT_MODE_SINGLE and (not owner_id or not refresh_token):
        raise MissingSingleTenantConfig(
            "Single-tenant mode requires BOT_OWNER_ID and CHZZK_REFRESH_TOKEN"
        )

    # Logging configuration
    log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_format = os.getenv('LOG_FORMAT', 'console')  # 'console' or 'json'

    return GlobalConfig(
        chzzk_client_id=client_id,
        chzzk_client_secret=client_secret,
        chzzk_api_url=api_url,
        firebase_project_id=project_id,
        firebase_client_email=client_email,
        firebase_private_key=private_key,
        bot_mode=bot_mode,
        owner_id=owner_id,
        refresh_token=refresh_token,
        owners_collection=os.getenv('OWNERS_COLLECTION', 'users'),
        commands_collection=os.getenv('COMMANDS_COLLECTION', 'commands'),
        command_refresh_interval=_get_float('COMMAND_REFRESH_INTERVAL', '30'),
        fleet_scan_interval=_get_float('FLEET_SCAN_INTERVAL', '60'),
        reconnect_delay=_get_float('RECONNECT_DELAY', '5'),
        connect_timeout=_get_float('CONNECT_TIMEOUT', '10'),
        http_timeout=_get_float('HTTP_TIMEOUT', '30'),
        log_level=log_level,
        log_format=log_format,
        log_file=os.getenv('LOG_FILE')
    )


def validate_config(config: GlobalConfig) -> None:
    """
    Validate configuration values for consistency and correctness.

    Args:
        config: Configuration to validate

    Raises:
        ValueError: If configuration is invalid
    """
    # Validate log level
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config.log_level not in valid_log_levels:
        raise ValueError(f"Invalid log level: {config.log_level}")

    # Validate log format
    valid_log_formats = ['console', 'json']
    if config.log_format not in valid_log_formats:
        raise ValueError(f"Invalid log format: {config.log_format}")

    # Validate tenancy mode
    if config.bot_mode not in [BOT_MODE_MULTI, BOT_MODE_SINGLE]:
        raise ValueError(f"Invalid bot mode: {config.bot_mode}")

    # Validate timer values
    for name in ['command_refresh_interval', 'fleet_scan_interval', 'connect_timeout', 'http_timeout']:
        if getattr(config, name) <= 0:
            raise ValueError(f"{name} must be positive")

    if config.reconnect_delay < 0:
        raise ValueError("reconnect_delay must not be negative")

    if not config.chzzk_api_url.startswith(('http://', 'https://')):
        raise ValueError(f"Invalid CHZZK API URL: {config.chzzk_api_url}")
