"""
Service layer for Category operations.

Categories classify income and expense transactions.  Parent kind is not
enforced, and names only need to be unique within one kind, so "Other"
can exist as both an income and an expense category.

Returns CategoryInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from ledger_kernel.domain.dtos import CategoryInfo
from ledger_kernel.exceptions import CategoryInUseError, CategoryNotFoundError
from ledger_kernel.models.category import Category, CategoryKind
from ledger_kernel.services.hierarchy import HierarchyService


class CategoryService(HierarchyService[Category, CategoryInfo]):
    """Create, rename, move, reorder and delete one tenant's categories."""

    model = Category
    entity_label = "category"
    kinds = tuple(k.value for k in CategoryKind)
    not_found_error = CategoryNotFoundError
    in_use_error = CategoryInUseError
    name_scoped_by_kind = True
    reference_columns = ("category_id",)

    def _to_dto(self, row: Category) -> CategoryInfo:
        return CategoryInfo(
            id=row.id,
            tenant_id=row.tenant_id,
            name=row.name,
            kind=row.kind,
            parent_id=row.parent_id,
            sort_order=row.sort_order,
        )

    def require_owned(self, category_id: int) -> Category:
        """Load a category of this tenant or raise CategoryNotFoundError."""
        return self._load(category_id)
