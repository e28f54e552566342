"""
Application Configuration
Add constants, secrets, env variables here
"""

from functools import lru_cache
import os
import json
import secrets
from pathlib import Path
from pydantic import computed_field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict
import boto3
from botocore.exceptions import ClientError
from dotenv import load_dotenv

# Load .env file into os.environ so os.getenv() works correctly
# This must happen before Settings class is instantiated
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_secret(secret_name: str, region_name: str) -> dict:
    """
    Retrieve secrets from AWS Secrets Manager

    Args:
        secret_name: Name of the secret in Secrets Manager
        region_name: AWS region where secret is stored

    Returns:
        dict: Parsed secret value

    Raises:
        ClientError: If secret cannot be retrieved
    """
    session = boto3.session.Session()
    client = session.client(
        service_name='secretsmanager',
        region_name=region_name
    )
    try:
        get_secret_value_response = client.get_secret_value(
            SecretId=secret_name
        )
    except ClientError:
        raise
    # Parse and return the secret
    secret = get_secret_value_response['SecretString']
    return json.loads(
        secret.replace('\n', '')
    )


# Define settings class for univeral access
class Settings(BaseSettings):
    # Computed or constant values
    client_origin: str | None = os.getenv("client_origin")
    LOG_LEVEL: str = "INFO"

    # Upload intake
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_FILES: int = 10
    MAX_UPLOAD_SIZE_BYTES: int = 10 * 1024 * 1024

    # File registry: "database" or "memory"
    REGISTRY_BACKEND: str = "database"
    # Keep a base64 copy of every upload in the file_blobs table
    STORE_BLOBS: bool = False

    # FTP mirror
    FTP_ENABLED: bool = True
    FTP_HOST: str | None = None
    FTP_PORT: int = 21
    FTP_USER: str | None = None
    FTP_UPLOADS_DIR: str = "public_html/uploads"
    FTP_TIMEOUT: float | None = None

    # Authentication / sessions
    # Comma separated "username:password" pairs
    AUTH_CREDENTIALS: str = "admin:changeme"
    SESSION_MINUTES: int = 30
    SESSION_SWEEP_SECONDS: int = 60
    SESSION_COOKIE_NAME: str = "locker_session"
    JWT_ALGORITHM: str = "HS256"

    # Cache for AWS Secrets Manager to avoid multiple API calls
    # Note: Must use PrivateAttr for Pydantic v2 private attributes
    _secret_cache: dict | None = PrivateAttr(default=None)
    _fallback_session_secret: str = PrivateAttr(
        default_factory=lambda: secrets.token_urlsafe(32)
    )

    def _get_config_value(
        self,
        env_var_name: str,
        secret_key_name: str | None = None,
        default: str | None = None
    ) -> str | None:
        """
        Get configuration value from environment variable or AWS Secrets Manager (with caching).

        Args:
            env_var_name: Environment variable name to check first
            secret_key_name: Key name in AWS Secrets (defaults to env_var_name if not provided)
            default: Default value to return if not found in env or secrets

        Returns:
            Configuration value, or default value if not found
        """
        # 1. Check environment variable first
        env_value = os.getenv(env_var_name)
        if env_value:
            return env_value

        # 2. Try to get from AWS Secrets Manager with caching
        if secret_key_name is None:
            secret_key_name = env_var_name

        env_secret = os.getenv('ENV_SECRETS')
        if env_secret:
            try:
                # Use cached secret if available
                if self._secret_cache is None:
                    self._secret_cache = get_secret(
                        env_secret, os.getenv("AWS_REGION", 'us-east-1')
                    )

                secret_value = self._secret_cache.get(secret_key_name)
                if secret_value is not None:
                    return secret_value
            except Exception:
                pass

        # 3. Return default value if provided
        return default

    # SQLAlchemy - Create db connection string
    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Build database URI from env or secrets, defaults to a local sqlite file"""
        return self._get_config_value(
            "SQLALCHEMY_DATABASE_URI", default="sqlite:///./locker.db"
        )

    @computed_field
    @property
    def FTP_PASSWORD(self) -> str | None:
        """Get FTP password from env or secrets"""
        return self._get_config_value("FTP_PASSWORD")

    @computed_field
    @property
    def SESSION_SECRET_KEY(self) -> str:
        """Signing key for session tokens; random per process when unset"""
        return self._get_config_value(
            "SESSION_SECRET_KEY", default=self._fallback_session_secret
        )

    @property
    def ftp_configured(self) -> bool:
        """True when the FTP mirror is switched on and has a host"""
        return bool(self.FTP_ENABLED and self.FTP_HOST)

    # Read environment variables from .env file, if it exists
    # extra='ignore' prevents validation errors from extra env vars
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class InMemoryDbSettings(Settings):
    """Settings used by the test suite"""
    TESTING: bool = True
    FTP_ENABLED: bool = False
    AUTH_CREDENTIALS: str = "tester:secret-password"

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        return "sqlite:///:memory:"


# Export settings
@lru_cache
def get_settings() -> Settings:
    """
    Get settings instance, cached for performance
    """
    if os.getenv("SETTINGS_MODE") == "test":
        return InMemoryDbSettings()
    return Settings()


if __name__ == "__main__":
    # To use in other modules
    # from core.config import get_settings
    print(get_settings().SQLALCHEMY_DATABASE_URI)
