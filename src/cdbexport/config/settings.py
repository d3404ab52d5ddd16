"""
Configuration management for the visualization exporter.

Usage:
    from cdbexport.config.settings import Config
    config = Config()
    timeout = config.http.timeout_s

Environment Variables (CDBEXPORT_ prefix):
    CDBEXPORT_TIMEOUT: Per-request timeout in seconds
    CDBEXPORT_CHUNK_SIZE: Bytes per streamed download chunk
    CDBEXPORT_MAX_RETRIES: Retries for connection errors and timeouts
    CDBEXPORT_USER_AGENT: User-Agent header sent with every request
    CDBEXPORT_MAX_CONCURRENCY: Concurrent sub-layer downloads (0 = unbounded)
    CDBEXPORT_EXPORT_STYLES: Also write style.json per sub-layer (true/false)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "cartodb-export"


@dataclass
class HttpConfig:
    """HTTP transport configuration."""
    timeout_s: float = 300.0
    chunk_size: int = 8192
    max_retries: int = 2
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self):
        """Validate transport configuration."""
        if self.timeout_s <= 0:
            raise ValueError("Timeout must be positive")
        if self.chunk_size < 1024:
            raise ValueError("Chunk size must be at least 1024 bytes")
        if self.max_retries < 0:
            raise ValueError("Retry count must be non-negative")
        if not self.user_agent:
            raise ValueError("User agent cannot be empty")


@dataclass
class ExportConfig:
    """Export fan-out configuration."""
    max_concurrency: int = 0  # 0 = no cap
    export_styles: bool = False

    def __post_init__(self):
        """Validate export configuration."""
        if self.max_concurrency < 0:
            raise ValueError("Max concurrency must be non-negative (0 disables the cap)")


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


class Config:
    """
    Centralized configuration for the exporter.

    Environment variables loaded (in order of preference):
    1. Explicit environment file passed to constructor
    2. .env.{ENVIRONMENT} (where ENVIRONMENT=development|production|staging)
    3. .env file in project root
    4. System environment variables

    Example:
        config = Config()
        config = Config(env_file=Path("/secure/export.env"))
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 env_file: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            environment: Target environment (development|staging|production)
            env_file: Explicit path to environment file
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "development")
        self.project_root = self._find_project_root()

        self._load_environment_variables(env_file)

        self._load_http_config()
        self._load_export_config()

    def _find_project_root(self) -> Path:
        """Find project root directory containing pyproject.toml, .git or .env."""
        current = Path(__file__).resolve()

        for parent in current.parents:
            if any((parent / marker).exists() for marker in ['pyproject.toml', '.git']):
                return parent

        for parent in current.parents:
            if (parent / '.env').exists():
                return parent

        return Path.cwd()

    def _load_environment_variables(self, env_file: Optional[Path]) -> None:
        """Load environment variables from appropriate source."""
        loaded_files = []

        if env_file:
            if env_file.exists():
                load_dotenv(env_file)
                loaded_files.append(str(env_file))
                logger.info(f"Loaded configuration from {env_file}")
            else:
                raise ConfigurationError(f"Specified env file not found: {env_file}")

        else:
            env_specific_file = self.project_root / f".env.{self.environment}"
            if env_specific_file.exists():
                load_dotenv(env_specific_file)
                loaded_files.append(str(env_specific_file))
                logger.info(f"Loaded environment-specific config: {env_specific_file}")

            generic_env_file = self.project_root / ".env"
            if generic_env_file.exists():
                load_dotenv(generic_env_file)
                loaded_files.append(str(generic_env_file))
                logger.info(f"Loaded generic config: {generic_env_file}")

        if not loaded_files:
            logger.debug("No .env files found, using system environment variables only")

        self._loaded_env_files = loaded_files

        logger.debug(f"Project root: {self.project_root}")
        logger.debug(f"Environment: {self.environment}")

    def _load_http_config(self) -> None:
        """Load HTTP transport configuration."""
        try:
            self.http = HttpConfig(
                timeout_s=float(os.getenv("CDBEXPORT_TIMEOUT", "300")),
                chunk_size=int(os.getenv("CDBEXPORT_CHUNK_SIZE", "8192")),
                max_retries=int(os.getenv("CDBEXPORT_MAX_RETRIES", "2")),
                user_agent=os.getenv("CDBEXPORT_USER_AGENT", DEFAULT_USER_AGENT),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid HTTP configuration: {e}")

    def _load_export_config(self) -> None:
        """Load export fan-out configuration."""
        try:
            self.export = ExportConfig(
                max_concurrency=int(os.getenv("CDBEXPORT_MAX_CONCURRENCY", "0")),
                export_styles=os.getenv("CDBEXPORT_EXPORT_STYLES", "false").lower() == "true",
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid export configuration: {e}")

    def get_http_settings(self) -> dict[str, Any]:
        """
        Get HTTP transport settings as dictionary.

        Returns:
            Dictionary of transport settings
        """
        return {
            'timeout_s': self.http.timeout_s,
            'chunk_size': self.http.chunk_size,
            'max_retries': self.http.max_retries,
            'user_agent': self.http.user_agent,
        }

    def get_export_settings(self) -> dict[str, Any]:
        """
        Get export settings as dictionary.

        Returns:
            Dictionary of export settings
        """
        return {
            'max_concurrency': self.export.max_concurrency,
            'export_styles': self.export.export_styles,
        }

    def __repr__(self) -> str:
        return (
            f"Config(environment={self.environment}, "
            f"timeout={self.http.timeout_s}, "
            f"max_concurrency={self.export.max_concurrency})"
        )
