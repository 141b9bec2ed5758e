from __future__ import annotations

from enum import Enum
import logging
from typing import Any, Iterable

from threereco.core.errors import ForbiddenError
from threereco.persistence.filters import Eq, RowFilter, TrueFilter, any_of


logger = logging.getLogger(__name__)


class PolicyKind(str, Enum):
    COLLECTIONS = "collections"
    TRANSACTIONS = "transactions"
    SYSTEM = "system"


USER_SYSTEM = "system"
USER_COLLECTOR = "collector"
USER_BUSINESS = "business"


def _collections_policy(principal: Any) -> RowFilter | None:
    if principal.type == USER_COLLECTOR:
        return Eq("seller_id", principal.id)
    if principal.type == USER_BUSINESS:
        return Eq("buyer_id", principal.primary_organization_id)
    return None


def _transactions_policy(principal: Any) -> RowFilter | None:
    if principal.type != USER_BUSINESS:
        return None
    organization_id = principal.primary_organization_id
    return any_of(Eq("seller_id", organization_id), Eq("buyer_id", organization_id))


def _system_policy(principal: Any) -> RowFilter | None:
    if principal.type == USER_SYSTEM:
        return TrueFilter()
    return None


_POLICIES = {
    PolicyKind.COLLECTIONS: _collections_policy,
    PolicyKind.TRANSACTIONS: _transactions_policy,
    PolicyKind.SYSTEM: _system_policy,
}


def compile_policies(principal: Any, kinds: Iterable[PolicyKind | str]) -> RowFilter:
    """Return the row filter contributed by the first policy kind whose guard matches.

    ``principal`` needs ``id``, ``type`` and ``primary_organization_id``. System
    users fall back to an unrestricted filter; anyone else with no matching kind
    is forbidden.
    """
    requested = [PolicyKind(kind) for kind in kinds]
    if not requested:
        return TrueFilter()
    for kind in requested:
        row_filter = _POLICIES[kind](principal)
        if row_filter is not None:
            return row_filter
    if principal.type == USER_SYSTEM:
        return TrueFilter()
    logger.warning(
        "policy_denied user_id=%s type=%s policies=%s",
        principal.id,
        principal.type,
        ",".join(kind.value for kind in requested),
    )
    raise ForbiddenError()
