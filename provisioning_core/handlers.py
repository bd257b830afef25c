"""
Request handlers for the admin console contract.

Each handler resolves the tenant, runs one provisioning operation and returns a
``(status_code, body)`` pair. Errors are rendered with their public message:
validation, duplicate and tenant errors verbatim, server-side failures as a
generic notice while the cause is logged for operators.
"""

import uuid
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .config import AppConfig, get_config
from .context.partition_resolver import PartitionResolver
from .db.db_config import DatabaseManager
from .exceptions import BaseError, ServiceError, clear_correlation_id, set_correlation_id
from .services.credential_delivery import CredentialDelivery
from .services.provisioning_service import ProvisioningService
from .utils.logger import get_logger

Response = Tuple[int, Dict[str, Any]]


class ProvisioningHandlers:
    def __init__(
        self,
        db_manager: DatabaseManager,
        config: Optional[AppConfig] = None,
        credential_delivery: Optional[CredentialDelivery] = None,
    ):
        self.db_manager = db_manager
        self.config = config or get_config()
        self.credential_delivery = credential_delivery
        self.resolver = PartitionResolver(db_manager)
        self.logger = get_logger()

    def _service(self, tenant_id: str) -> ProvisioningService:
        tenant = self.resolver.resolve(tenant_id)
        return ProvisioningService(
            tenant,
            self.db_manager,
            config=self.config,
            credential_delivery=self.credential_delivery,
        )

    def _handle(
        self,
        tenant_id: str,
        action: Callable[[ProvisioningService], Dict[str, Any]],
        success_status: int = 200,
        correlation_id: Optional[str] = None,
    ) -> Response:
        set_correlation_id(correlation_id or str(uuid.uuid4()))
        try:
            body = action(self._service(tenant_id))
            return success_status, {"success": True, **body}
        except BaseError as e:
            return e.status_code, {
                "success": False,
                **e.to_dict(include_cause=self.config.security.include_error_causes),
            }
        except Exception as e:
            # Constructing the error logs the cause with its traceback
            error = ServiceError(
                f"Unhandled {type(e).__name__} while handling request",
                cause=e,
                tenant_id=tenant_id,
            )
            return error.status_code, {
                "success": False,
                **error.to_dict(include_cause=self.config.security.include_error_causes),
            }
        finally:
            clear_correlation_id()

    def _create(
        self, kind: str, tenant_id: str, actor_id: str, payload: Mapping[str, Any]
    ) -> Response:
        def action(service: ProvisioningService) -> Dict[str, Any]:
            provisioned = getattr(service, f"create_{kind}")(actor_id, payload)
            return {
                "message": f"{kind.capitalize()} created successfully",
                "data": {
                    "user": provisioned.user.model_dump(mode="json"),
                    "temporaryPassword": provisioned.temp_password,
                },
            }

        return self._handle(tenant_id, action, success_status=201)

    def create_teacher(self, tenant_id: str, actor_id: str, payload: Mapping[str, Any]) -> Response:
        return self._create("teacher", tenant_id, actor_id, payload)

    def create_student(self, tenant_id: str, actor_id: str, payload: Mapping[str, Any]) -> Response:
        return self._create("student", tenant_id, actor_id, payload)

    def create_staff(self, tenant_id: str, actor_id: str, payload: Mapping[str, Any]) -> Response:
        return self._create("staff", tenant_id, actor_id, payload)

    def create_parent(self, tenant_id: str, actor_id: str, payload: Mapping[str, Any]) -> Response:
        return self._create("parent", tenant_id, actor_id, payload)

    def deactivate_user(
        self, tenant_id: str, user_id: str, actor_id: Optional[str] = None
    ) -> Response:
        def action(service: ProvisioningService) -> Dict[str, Any]:
            user = service.deactivate_user(user_id, actor_id=actor_id)
            return {"message": "User deactivated successfully", "data": user.model_dump(mode="json")}

        return self._handle(tenant_id, action)

    def bulk_create_users(
        self, tenant_id: str, actor_id: str, payload: Mapping[str, Any]
    ) -> Response:
        def action(service: ProvisioningService) -> Dict[str, Any]:
            result = service.bulk_create_users(actor_id, payload)
            return {
                "message": (
                    f"Bulk creation completed: {len(result.success)} succeeded, "
                    f"{len(result.failed)} failed"
                ),
                "data": {
                    "success": [
                        {
                            "user": item.user.model_dump(mode="json"),
                            "temporaryPassword": item.temp_password,
                        }
                        for item in result.success
                    ],
                    "failed": [failure.model_dump() for failure in result.failed],
                },
            }

        return self._handle(tenant_id, action)

    def update_user(
        self, tenant_id: str, user_id: str, actor_id: str, payload: Mapping[str, Any]
    ) -> Response:
        def action(service: ProvisioningService) -> Dict[str, Any]:
            user = service.update_user(user_id, payload, actor_id=actor_id)
            return {"message": "User updated successfully", "data": user.model_dump(mode="json")}

        return self._handle(tenant_id, action)

    def assign_permissions(
        self, tenant_id: str, user_id: str, actor_id: str, payload: Mapping[str, Any]
    ) -> Response:
        def action(service: ProvisioningService) -> Dict[str, Any]:
            user = service.assign_permissions(user_id, payload, actor_id=actor_id)
            return {
                "message": "Permissions assigned successfully",
                "data": user.model_dump(mode="json"),
            }

        return self._handle(tenant_id, action)
