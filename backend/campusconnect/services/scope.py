from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Query

from .. import models
from ..errors import Forbidden

# purpose: derive department-bound administrator scopes and gate writes on moderatable items
# status: active


@dataclass(frozen=True)
class AdminScope:
    """Authorization boundary of one administrator action."""

    department: str | None = None

    @property
    def is_global(self) -> bool:
        return self.department is None

    def describe(self) -> str:
        return "global" if self.is_global else f"department:{self.department}"


def resolve_scope(principal: models.User) -> AdminScope:
    """Return the scope implied by the principal's profile department.

    An empty or unset department is a global scope, not an error.
    """

    department = (principal.department or "").strip()
    return AdminScope(department=department or None)


def authorize(scope: AdminScope, item: models.ModeratableMixin) -> bool:
    if scope.is_global:
        return True
    return item.owner_department == scope.department


def ensure_authorized(scope: AdminScope, item: models.ModeratableMixin) -> None:
    if not authorize(scope, item):
        raise Forbidden(f"You can only moderate {item.label}s from your department")


def require_admin(principal: models.User) -> AdminScope:
    """Return the principal's scope, rejecting non-administrators."""

    if not principal.is_admin:
        raise Forbidden("Admin access required")
    return resolve_scope(principal)


def ensure_owner_or_admin(principal: models.User, item: models.ModeratableMixin) -> None:
    """Allow the owner, or an administrator whose scope covers the item."""

    if item.owner_id == principal.id:
        return
    if principal.is_admin and authorize(resolve_scope(principal), item):
        return
    raise Forbidden(f"Not authorized to modify this {item.label}")


def filter_by_scope(query: Query, model: type[models.ModeratableMixin], scope: AdminScope) -> Query:
    """Restrict a query over ``model`` to the rows the scope may act on."""

    if scope.is_global:
        return query
    return query.filter(model.owner_department == scope.department)


def admins_covering(db, item: models.ModeratableMixin) -> list[models.User]:
    """Return active administrators whose scope authorizes ``item``."""

    admins = (
        db.query(models.User)
        .filter(
            models.User.is_admin.is_(True),
            models.User.visibility == models.VISIBILITY_VISIBLE,
        )
        .all()
    )
    return [admin for admin in admins if authorize(resolve_scope(admin), item)]


def can_view(principal: models.User, item: models.ModeratableMixin) -> bool:
    """Published items are public; pending or hidden ones only reach their owner and scoped admins."""

    if item.is_approved and not item.is_hidden:
        return True
    if item.owner_id == principal.id:
        return True
    return principal.is_admin and authorize(resolve_scope(principal), item)
