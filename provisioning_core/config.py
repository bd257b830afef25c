"""
Centralized configuration management for the provisioning core.

This module provides a unified configuration system with support for:
- Environment variables
- Feature flags
- Provisioning policy (role permission scopes, password and transaction settings)
- Validation using Pydantic
"""

import os
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import EnvironmentVariable, LogLevel, QueueName, UserType


def _env_int(variable: EnvironmentVariable, default: int) -> int:
    return int(os.getenv(variable.value, str(default)))


def _env_flag(variable: EnvironmentVariable, default: bool = False) -> bool:
    return os.getenv(variable.value, str(default)).lower() == "true"


# Permission-key patterns granted per user type, intersected with the plan scope.
DEFAULT_ROLE_PERMISSION_SCOPES: Dict[str, List[str]] = {
    UserType.ADMIN.value: ["*"],
    UserType.TEACHER.value: [
        "view_*",
        "academics.view",
        "attendance.view",
        "timetable.view",
        "communication.view",
    ],
    UserType.STUDENT.value: [
        "academics.view",
        "timetable.view",
        "exams.view",
        "communication.view",
    ],
    UserType.STAFF.value: ["communication.view", "reports.view"],
    UserType.PARENT.value: ["academics.view", "attendance.view", "exams.view"],
}


class QueueConfig(BaseModel):
    """Queue configuration for Azure Storage Queues."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AZURE_STORAGE_CONNECTION.value, ""),
        description="Azure Storage connection string",
    )
    logs_queue_name: str = Field(default=QueueName.LOGS.value, description="Logs queue name")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class FeatureFlags(BaseModel):
    """Feature flags for controlling runtime behavior."""

    enable_logs_queue: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.ENABLE_LOGS_QUEUE),
        description="Ship structured logs to the Azure logs queue",
    )
    enable_audit_log: bool = Field(default=True, description="Record audit events after commit")


class ProvisioningConfig(BaseModel):
    """Policy for the user provisioning workflows."""

    temp_password_length: int = Field(
        default_factory=lambda: _env_int(EnvironmentVariable.TEMP_PASSWORD_LENGTH, 12),
        ge=8,
        le=128,
        description="Length of generated temporary passwords",
    )
    bcrypt_rounds: int = Field(
        default_factory=lambda: _env_int(EnvironmentVariable.BCRYPT_ROUNDS, 12),
        ge=4,
        le=31,
        description="bcrypt cost factor for password hashes",
    )
    transaction_timeout_seconds: float = Field(
        default_factory=lambda: float(_env_int(EnvironmentVariable.TRANSACTION_TIMEOUT, 30)),
        gt=0,
        description="Wall-clock budget for one tenant write transaction",
    )
    bulk_max_size: int = Field(default=100, ge=1, description="Maximum users per bulk request")
    bulk_max_workers: int = Field(
        default_factory=lambda: _env_int(EnvironmentVariable.BULK_MAX_WORKERS, 1),
        ge=1,
        description="Worker threads for bulk creation; 1 runs items sequentially",
    )
    role_create_max_attempts: int = Field(
        default=3, ge=1, description="Retries when concurrent role creation collides"
    )
    realm_prefix: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.REALM_PREFIX.value, "school"),
        description="Prefix for realms derived from the institution identity",
    )
    role_permission_scopes: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_ROLE_PERMISSION_SCOPES.items()},
        description="Permission-key patterns granted per user type",
    )

    @field_validator("role_permission_scopes")
    def validate_role_scopes(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        """Every known user type needs an entry."""
        missing = {t.value for t in UserType} - set(v)
        if missing:
            raise ValueError(f"Missing permission scopes for user types: {sorted(missing)}")
        return v

    def scope_for(self, user_type: str) -> List[str]:
        return self.role_permission_scopes.get(user_type, [])


class SecurityConfig(BaseModel):
    """Security-related configuration."""

    include_error_causes: bool = Field(
        default=False, description="Expose error causes in handler responses"
    )


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.DEBUG),
        description="Debug mode",
    )

    queue: QueueConfig = Field(default_factory=QueueConfig, description="Queue configuration")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    features: FeatureFlags = Field(default_factory=FeatureFlags, description="Feature flags")
    provisioning: ProvisioningConfig = Field(
        default_factory=ProvisioningConfig, description="Provisioning policy"
    )
    security: SecurityConfig = Field(
        default_factory=SecurityConfig, description="Security configuration"
    )

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the process configuration, loading it from the environment on first use."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
