"""
User repository: identity rows inside one tenant partition.
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select, update

from ..db.db_tenant_models import User
from ..exceptions import ValidationError, not_found
from .base_repository import TenantScopedRepository

UNIQUE_FIELDS = ("id", "email")
SEARCH_FIELDS = ("first_name", "last_name", "email", "phone")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class UserRepository(TenantScopedRepository[User]):
    entity_class = User

    def create(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        password_hash: str,
        user_type: str,
        created_by: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> User:
        """
        Insert a user owned by the bound tenant; the email is stored lower-case.

        Raises:
            DuplicateEntityError: If the email is already used in this partition
        """
        email = normalize_email(email)
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            password_hash=password_hash,
            institution_id=self.tenant.tenant_id,
            user_type=user_type,
            created_by=created_by,
            meta=metadata or {},
            is_active=True,
            is_email_verified=False,
        )
        return self._add(user, "create_user", field="email", email=email)

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self._get_by_id(user_id)

    def get_by_id(self, user_id: str) -> User:
        """Like find_by_id, but raises NotFoundError when missing."""
        user = self.find_by_id(user_id)
        if user is None:
            raise not_found("User", user_id=user_id, **self.tenant.log_context())
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup."""
        with self._session_operation("find_by_email", is_read_only=True):
            return self.session.execute(
                select(User).where(func.lower(User.email) == normalize_email(email))
            ).scalar_one_or_none()

    def find_by_unique(self, field: str, value: str) -> Optional[User]:
        if field not in UNIQUE_FIELDS:
            raise ValidationError(
                f"Users cannot be looked up by {field}", field="field", value=field
            )
        if field == "email":
            return self.find_by_email(value)
        return self.find_by_id(value)

    def exists_by_email(self, email: str) -> bool:
        return self.find_by_email(email) is not None

    def update(self, user_id: str, **values: Any) -> User:
        """Set the given columns on a user; ``metadata`` maps to the meta column."""
        if "metadata" in values:
            values["meta"] = values.pop("metadata")
        if "email" in values:
            values["email"] = normalize_email(values["email"])
        for key in values:
            if not hasattr(User, key) or key in ("id", "institution_id", "created_at"):
                raise ValidationError(f"User field {key} cannot be updated", field=key)

        user = self.get_by_id(user_id)
        with self._session_operation("update_user", user_id, field="email"):
            for key, value in values.items():
                setattr(user, key, value)
        return user

    def _set_active(self, user_id: str, is_active: bool, operation_name: str) -> bool:
        # Only is_active changes; updated_at is pinned to its current value
        with self._session_operation(operation_name, user_id):
            result = self.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(is_active=is_active, updated_at=User.updated_at)
                .execution_options(synchronize_session=False)
            )
            cached = self.session.identity_map.get(self.session.identity_key(User, user_id))
            if cached is not None:
                self.session.expire(cached, ["is_active"])
        return result.rowcount > 0

    def soft_deactivate(self, user_id: str) -> bool:
        """Mark the user inactive. Returns False when no row matched."""
        return self._set_active(user_id, False, "soft_deactivate")

    def reactivate(self, user_id: str) -> bool:
        return self._set_active(user_id, True, "reactivate")

    def _apply_search(self, query, search: Optional[str]):
        """Case-insensitive substring match on name, email or phone."""
        term = (search or "").strip().lower()
        if not term:
            return query
        pattern = _like_pattern(term)
        return query.where(
            or_(
                *(
                    func.lower(getattr(User, field)).like(pattern, escape="\\")
                    for field in SEARCH_FIELDS
                )
            )
        )

    def list(
        self,
        user_type: Optional[str] = None,
        is_active: Optional[bool] = True,
        limit: int = 50,
        offset: int = 0,
        search: Optional[str] = None,
    ) -> Tuple[List[User], int]:
        query = self._apply_filters(
            select(User), {"user_type": user_type, "is_active": is_active}
        )
        query = self._apply_search(query, search)
        return self._list_with_pagination(query, limit=limit, offset=offset)

    def count_by_type_and_status(
        self, user_type: Optional[str] = None, search: Optional[str] = None
    ) -> Dict[Tuple[str, bool], int]:
        """User counts keyed by ``(user_type, is_active)``."""
        query = self._apply_filters(
            select(User.user_type, User.is_active, func.count(User.id)),
            {"user_type": user_type},
        )
        query = self._apply_search(query, search).group_by(User.user_type, User.is_active)
        with self._session_operation("count_by_type_and_status", is_read_only=True):
            rows = self.session.execute(query).all()
        return {(row_type, bool(active)): count for row_type, active, count in rows}
