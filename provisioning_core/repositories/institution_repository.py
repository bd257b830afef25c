"""
Institution repository over the global partition.

Lookups ignore soft-deleted institutions.
"""

from typing import Optional

from sqlalchemy import or_, select

from ..db.db_global_models import Institution
from ..exceptions import ValidationError
from .base_repository import GlobalRepository

UNIQUE_FIELDS = ("id", "slug", "sub_domain", "partition_name")


class InstitutionRepository(GlobalRepository[Institution]):
    entity_class = Institution

    def _live(self):
        return select(Institution).where(Institution.deleted_at.is_(None))

    def find_by_unique(self, field: str, value: str) -> Optional[Institution]:
        if field not in UNIQUE_FIELDS:
            raise ValidationError(
                f"Institutions cannot be looked up by {field}", field="field", value=field
            )
        with self._session_operation(f"find_by_{field}", is_read_only=True):
            return self.session.execute(
                self._live().where(getattr(Institution, field) == value)
            ).scalar_one_or_none()

    def find_by_id(self, institution_id: str) -> Optional[Institution]:
        return self.find_by_unique("id", institution_id)

    def find_by_slug(self, slug: str) -> Optional[Institution]:
        return self.find_by_unique("slug", slug)

    def find_by_partition(self, partition_name: str) -> Optional[Institution]:
        return self.find_by_unique("partition_name", partition_name)

    def find_by_identifier(self, identifier: str) -> Optional[Institution]:
        """
        Resolve a tenant identifier: id first, then slug, then sub-domain.
        """
        with self._session_operation("find_by_identifier", is_read_only=True):
            candidates = self.session.execute(
                self._live().where(
                    or_(
                        Institution.id == identifier,
                        Institution.slug == identifier,
                        Institution.sub_domain == identifier,
                    )
                )
            ).scalars().all()

        for field in ("id", "slug", "sub_domain"):
            for institution in candidates:
                if getattr(institution, field) == identifier:
                    return institution
        return None
