"""
Constants and enums for the provisioning core.

This module centralizes the magic strings used across the partition resolver,
repositories and provisioning workflows so they stay consistent.
"""

from enum import Enum


class UserType(str, Enum):
    """User kinds the provisioning service can create."""

    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    STAFF = "staff"
    PARENT = "parent"


class InstitutionStatus(str, Enum):
    """Lifecycle status of an institution in the global partition."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class ProvisioningStep(str, Enum):
    """Steps of the single-user provisioning transaction, in execution order."""

    CREATE_USER = "create_user"
    RESOLVE_ROLE = "resolve_role"
    ASSIGN_ROLE = "assign_role"
    GRANT_PERMISSIONS = "grant_permissions"
    CREATE_PROFILE = "create_profile"
    COMMIT = "commit"
    DEACTIVATE = "deactivate"
    REACTIVATE = "reactivate"
    UPDATE_USER = "update_user"
    ASSIGN_PERMISSIONS = "assign_permissions"


class AuditAction(str, Enum):
    """Actions recorded in the tenant audit log."""

    USER_CREATED = "USER_CREATED"
    USER_DEACTIVATED = "USER_DEACTIVATED"
    USER_REACTIVATED = "USER_REACTIVATED"
    USER_BULK_CREATED = "USER_BULK_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_PERMISSIONS_ASSIGNED = "USER_PERMISSIONS_ASSIGNED"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class ParentRelationship(str, Enum):
    FATHER = "father"
    MOTHER = "mother"
    GUARDIAN = "guardian"


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class QueueName(str, Enum):
    """Queue names used for shipping structured output."""

    LOGS = "logs-queue"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    AZURE_STORAGE_CONNECTION = "AzureWebJobsStorage"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    DEBUG = "DEBUG"
    ENABLE_LOGS_QUEUE = "ENABLE_LOGS_QUEUE"
    BCRYPT_ROUNDS = "PROVISIONING_BCRYPT_ROUNDS"
    TEMP_PASSWORD_LENGTH = "PROVISIONING_TEMP_PASSWORD_LENGTH"
    TRANSACTION_TIMEOUT = "PROVISIONING_TRANSACTION_TIMEOUT"
    BULK_MAX_WORKERS = "PROVISIONING_BULK_MAX_WORKERS"
    REALM_PREFIX = "PROVISIONING_REALM_PREFIX"


# Placeholder schema name that tenant tables are declared against; it is
# translated to the real partition name when a partition engine is built.
TENANT_SCHEMA_PLACEHOLDER = "tenant"

# Session.info key carrying the partition a session is bound to
SESSION_PARTITION_KEY = "partition"

# Partition name used for the shared catalog
GLOBAL_PARTITION = "public"

MAX_BULK_USERS = 100
DEFAULT_PAGE_SIZE = 50
