"""
Configuration - everything the server needs to reach an Actual Budget server.

SECURITY AUDIT NOTES:
- The server password is read from the environment or the OS keyring
- The password is NEVER logged or printed
- Settings are validated once at startup; the process exits if any
  required value is missing

Environment variables (a .env file in the working directory is loaded first):
    ACTUAL_DATA_DIR             Local directory for the downloaded budget
    ACTUAL_SERVER_URL           Actual sync server URL
    ACTUAL_PASSWORD             Server password (or stored in the keyring)
    ACTUAL_BUDGET_ID            Budget sync ID or budget name
    ACTUAL_ENCRYPTION_PASSWORD  End-to-end encryption password, if any
    READ_ONLY                   "true" or "1" disables all mutation tools
    ACTUAL_MCP_LOG_LEVEL        Logging level (default INFO)
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

# ============================================================================
# DEFAULTS
# ============================================================================

DEFAULT_DATA_DIR = "./actual-data"
DEFAULT_SERVER_URL = "http://localhost:5006"
DEFAULT_LOG_LEVEL = "INFO"

KEYRING_SERVICE = "actual-mcp-server"
KEYRING_USER = "password"

TRUTHY = ("true", "1", "yes")


# ============================================================================
# PASSWORD MANAGEMENT
# ============================================================================

def get_password(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Retrieve the Actual server password.

    Priority:
    1. Environment variable ACTUAL_PASSWORD
    2. OS keyring

    Returns:
        The password, or None if it is not configured anywhere.
    """
    environ = os.environ if environ is None else environ
    password = environ.get("ACTUAL_PASSWORD")
    if password:
        return password

    try:
        import keyring
        password = keyring.get_password(KEYRING_SERVICE, KEYRING_USER)
        if password:
            return password
    except Exception:
        pass  # keyring error (e.g., no backend)

    return None


def store_password(password: str) -> bool:
    """
    Store the Actual server password in the OS keyring.

    Returns:
        True if stored successfully, False otherwise
    """
    try:
        import keyring
        keyring.set_password(KEYRING_SERVICE, KEYRING_USER, password)
        return True
    except Exception as e:
        print(f"Error storing password: {e}")
        return False


# ============================================================================
# SETTINGS
# ============================================================================

def parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUTHY


@dataclass(frozen=True)
class Settings:
    """Validated server configuration."""
    budget_id: str
    password: str
    server_url: str = DEFAULT_SERVER_URL
    data_dir: str = DEFAULT_DATA_DIR
    encryption_password: Optional[str] = None
    read_only: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    def __repr__(self) -> str:
        # keep secrets out of logs and tracebacks
        return (
            f"Settings(budget_id={self.budget_id!r}, server_url={self.server_url!r}, "
            f"data_dir={self.data_dir!r}, read_only={self.read_only})"
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, load_env_file: bool = True) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ (used by tests)
            load_env_file: Load a .env file into os.environ first

        Raises:
            ConfigurationError: If ACTUAL_BUDGET_ID or the password is missing
        """
        if load_env_file:
            load_dotenv()
        environ = os.environ if environ is None else environ

        budget_id = (environ.get("ACTUAL_BUDGET_ID") or "").strip()
        if not budget_id:
            raise ConfigurationError("ACTUAL_BUDGET_ID environment variable is required")

        password = get_password(environ)
        if not password:
            raise ConfigurationError(
                "ACTUAL_PASSWORD environment variable is required "
                "(or run 'actual-mcp store-password' to save it securely)"
            )

        return cls(
            budget_id=budget_id,
            password=password,
            server_url=environ.get("ACTUAL_SERVER_URL") or DEFAULT_SERVER_URL,
            data_dir=environ.get("ACTUAL_DATA_DIR") or DEFAULT_DATA_DIR,
            encryption_password=environ.get("ACTUAL_ENCRYPTION_PASSWORD") or None,
            read_only=parse_bool(environ.get("READ_ONLY")),
            log_level=(environ.get("ACTUAL_MCP_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )
