"""
HierarchyService -- shared CRUD for tenant-owned trees.

Responsibility:
    Accounts and categories are both per-tenant trees with a kind, an
    optional parent, a sibling order and a delete-only-when-unused rule.
    This base holds that behaviour once; AccountService and
    CategoryService bind it to a model, its error types, and the
    transaction columns that reference it.

Architecture position:
    Kernel > Services.  Flush-only, tenant-scoped.

Invariants enforced:
    - Every id supplied by the caller (target or parent) is re-loaded with
      a ``tenant_id`` filter.  A foreign row raises the same NotFound error
      as a missing one.
    - Parent chains stay acyclic: move() rejects a parent inside the
      entity's own subtree.
    - Delete only when no transaction references the entity and it has no
      children.
    - reorder() is one UPDATE statement restricted to the tenant, so a
      partial reorder is never visible.
"""

from __future__ import annotations

from typing import ClassVar, Generic, Iterable, Sequence, TypeVar

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.dtos import EntityDetail, EntityUsage, ReorderItem
from ledger_kernel.exceptions import (
    DuplicateNameError,
    InvalidParentError,
    InvariantViolationError,
    NotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.transaction import LedgerTransaction
from ledger_kernel.services.base import ModelType, TenantScopedService

logger = get_logger("services.hierarchy")

InfoType = TypeVar("InfoType")


class HierarchyService(TenantScopedService[ModelType], Generic[ModelType, InfoType]):
    """
    Tenant-scoped CRUD for one tree-shaped entity.

    Subclasses set the class attributes below and implement ``_to_dto``.
    """

    model: ClassVar[type]
    entity_label: ClassVar[str]
    kinds: ClassVar[tuple[str, ...]]
    not_found_error: ClassVar[type[NotFoundError]]
    in_use_error: ClassVar[type[InvariantViolationError]]
    # Parent must share the child's kind
    require_same_kind_parent: ClassVar[bool] = False
    # Names are unique per (tenant, kind) rather than per tenant
    name_scoped_by_kind: ClassVar[bool] = False
    # LedgerTransaction columns that reference this entity
    reference_columns: ClassVar[tuple[str, ...]]

    # -- lookups -------------------------------------------------------

    def _to_dto(self, row: ModelType) -> InfoType:
        raise NotImplementedError

    def _load(self, entity_id: int) -> ModelType:
        row = self.session.execute(
            select(self.model).where(
                self.model.id == entity_id,
                self.model.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise self.not_found_error(entity_id)
        return row

    def _check_kind(self, kind: str) -> str:
        value = getattr(kind, "value", kind)
        if value not in self.kinds:
            raise InvariantViolationError(
                f"{self.entity_label} kind must be one of {', '.join(self.kinds)}: {kind!r}"
            )
        return value

    def _check_name_free(self, name: str, kind: str, exclude_id: int | None = None) -> None:
        stmt = select(self.model.id).where(
            self.model.tenant_id == self.tenant_id,
            self.model.name == name,
        )
        if self.name_scoped_by_kind:
            stmt = stmt.where(self.model.kind == kind)
        if exclude_id is not None:
            stmt = stmt.where(self.model.id != exclude_id)
        if self.session.execute(stmt.limit(1)).first() is not None:
            raise DuplicateNameError(self.entity_label, name)

    def _check_parent(self, entity_id: int | None, kind: str, parent_id: int) -> None:
        if entity_id is not None and parent_id == entity_id:
            raise InvalidParentError(entity_id, parent_id, "entity cannot be its own parent")

        parent = self._load(parent_id)
        if self.require_same_kind_parent and parent.kind != kind:
            raise InvalidParentError(
                entity_id, parent_id, f"parent kind {parent.kind} differs from {kind}"
            )

        if entity_id is None:
            return
        # Walk up from the proposed parent; meeting entity_id means a cycle
        seen: set[int] = set()
        cursor: int | None = parent.parent_id
        while cursor is not None and cursor not in seen:
            if cursor == entity_id:
                raise InvalidParentError(
                    entity_id, parent_id, "parent is a descendant of the entity"
                )
            seen.add(cursor)
            cursor = self.session.execute(
                select(self.model.parent_id).where(
                    self.model.id == cursor,
                    self.model.tenant_id == self.tenant_id,
                )
            ).scalar_one_or_none()

    def _next_sort_order(self, kind: str, parent_id: int | None) -> int:
        current = self.session.execute(
            select(func.max(self.model.sort_order)).where(
                self.model.tenant_id == self.tenant_id,
                self.model.kind == kind,
                self.model.parent_id.is_(None)
                if parent_id is None
                else self.model.parent_id == parent_id,
            )
        ).scalar_one()
        return 0 if current is None else current + 1

    def usage(self, entity_id: int) -> EntityUsage:
        """Transaction and child counts for an owned entity."""
        self._load(entity_id)
        columns = [getattr(LedgerTransaction, c) for c in self.reference_columns]
        transaction_count = self.session.execute(
            select(func.count(LedgerTransaction.id)).where(
                or_(*(col == entity_id for col in columns))
            )
        ).scalar_one()
        child_count = self.session.execute(
            select(func.count(self.model.id)).where(
                self.model.parent_id == entity_id,
                self.model.tenant_id == self.tenant_id,
            )
        ).scalar_one()
        return EntityUsage(transaction_count=transaction_count, child_count=child_count)

    # -- public operations ---------------------------------------------

    def get(self, entity_id: int) -> EntityDetail:
        """The entity plus its usage, so callers can show ``can_delete``."""
        row = self._load(entity_id)
        return EntityDetail(entity=self._to_dto(row), usage=self.usage(entity_id))

    def list_all(self, kind: str | None = None) -> list[InfoType]:
        """All of the tenant's entities ordered by (sort_order, id)."""
        stmt = select(self.model).where(self.model.tenant_id == self.tenant_id)
        if kind is not None:
            stmt = stmt.where(self.model.kind == self._check_kind(kind))
        stmt = stmt.order_by(self.model.sort_order, self.model.id)
        return [self._to_dto(row) for row in self.session.execute(stmt).scalars()]

    def create(
        self,
        name: str,
        kind: str,
        parent_id: int | None = None,
        sort_order: int | None = None,
    ) -> InfoType:
        kind = self._check_kind(kind)
        name = name.strip()
        if not name:
            raise InvariantViolationError(f"{self.entity_label} name must not be empty")
        self._check_name_free(name, kind)
        if parent_id is not None:
            self._check_parent(None, kind, parent_id)
        if sort_order is None:
            sort_order = self._next_sort_order(kind, parent_id)

        row = self.model(
            tenant_id=self.tenant_id,
            name=name,
            kind=kind,
            parent_id=parent_id,
            sort_order=sort_order,
        )
        self.session.add(row)
        self._flush_or_conflict(name)

        logger.info(
            f"{self.entity_label}_created",
            extra={"entity_id": row.id, "kind": kind, "parent_id": parent_id},
        )
        return self._to_dto(row)

    def rename(self, entity_id: int, name: str) -> InfoType:
        row = self._load(entity_id)
        name = name.strip()
        if not name:
            raise InvariantViolationError(f"{self.entity_label} name must not be empty")
        self._check_name_free(name, row.kind, exclude_id=entity_id)
        row.name = name
        self._flush_or_conflict(name)
        logger.info(f"{self.entity_label}_renamed", extra={"entity_id": entity_id})
        return self._to_dto(row)

    def move(self, entity_id: int, parent_id: int | None) -> InfoType:
        """Re-parent an entity; ``None`` makes it a root."""
        row = self._load(entity_id)
        if parent_id is not None:
            self._check_parent(entity_id, row.kind, parent_id)
        row.parent_id = parent_id
        self.session.flush()
        logger.info(
            f"{self.entity_label}_moved",
            extra={"entity_id": entity_id, "parent_id": parent_id},
        )
        return self._to_dto(row)

    def delete(self, entity_id: int) -> None:
        row = self._load(entity_id)
        usage = self.usage(entity_id)
        if not usage.can_delete:
            logger.warning(
                f"{self.entity_label}_delete_refused",
                extra={
                    "entity_id": entity_id,
                    "transaction_count": usage.transaction_count,
                    "child_count": usage.child_count,
                },
            )
            raise self.in_use_error(entity_id, usage.transaction_count, usage.child_count)
        self.session.delete(row)
        self.session.flush()
        logger.info(f"{self.entity_label}_deleted", extra={"entity_id": entity_id})

    def reorder(self, items: Sequence[ReorderItem] | Iterable[ReorderItem]) -> int:
        """
        Apply new sibling positions in a single UPDATE.

        Ids that do not belong to the tenant are skipped, never touched.

        Returns:
            Number of rows updated.
        """
        positions = {item.id: item.order for item in items}
        if not positions:
            return 0
        stmt = (
            update(self.model)
            .where(
                self.model.id.in_(list(positions)),
                self.model.tenant_id == self.tenant_id,
            )
            .values(sort_order=case(positions, value=self.model.id))
            .execution_options(synchronize_session=False)
        )
        updated = self.session.execute(stmt).rowcount
        self.session.expire_all()
        logger.info(
            f"{self.entity_label}_reordered",
            extra={"requested": len(positions), "updated": updated},
        )
        return updated

    def _flush_or_conflict(self, name: str) -> None:
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateNameError(self.entity_label, name) from exc
