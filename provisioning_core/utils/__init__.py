"""Utility modules for the provisioning core."""

from .logger import (
    AzureQueueHandler,
    ContextAwareLogger,
    configure_logging,
    get_logger,
)
from .password_utils import PasswordHasher, generate_temp_password

__all__ = [
    # Logging utilities
    "ContextAwareLogger",
    "AzureQueueHandler",
    "configure_logging",
    "get_logger",
    # Credentials
    "PasswordHasher",
    "generate_temp_password",
]
