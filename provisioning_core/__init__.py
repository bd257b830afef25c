"""
Tenant-isolated user provisioning.

Resolves the data partition a request operates on, provisions users
atomically inside that partition and bridges plan reads from the shared
catalog.
"""

__version__ = "0.1.0"
