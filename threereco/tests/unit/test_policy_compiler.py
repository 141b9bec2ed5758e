from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest

from threereco.core.errors import ForbiddenError
from threereco.domain.models import Collection, Transaction
from threereco.persistence.filters import And, Eq, Or, TrueFilter, any_of, matches_row, to_clause
from threereco.services.authz import PolicyKind, compile_policies


def _principal(user_type: str, organization_id=None) -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), type=user_type, primary_organization_id=organization_id)


def test_collector_sees_own_collections() -> None:
    # Collectors are sellers of the collections they may see.
    principal = _principal("collector")
    row_filter = compile_policies(principal, [PolicyKind.COLLECTIONS, PolicyKind.SYSTEM])
    assert row_filter == Eq("seller_id", principal.id)


def test_business_sees_collections_bought_by_primary_organization() -> None:
    organization_id = uuid4()
    principal = _principal("business", organization_id)
    row_filter = compile_policies(principal, ["collections", "system"])
    assert row_filter == Eq("buyer_id", organization_id)


def test_business_transactions_match_either_side() -> None:
    organization_id = uuid4()
    principal = _principal("business", organization_id)
    row_filter = compile_policies(principal, [PolicyKind.TRANSACTIONS, PolicyKind.SYSTEM])
    assert row_filter == Or((Eq("seller_id", organization_id), Eq("buyer_id", organization_id)))

    visible = Transaction(seller_id=uuid4(), buyer_id=organization_id)
    hidden = Transaction(seller_id=uuid4(), buyer_id=uuid4())
    assert matches_row(row_filter, visible)
    assert not matches_row(row_filter, hidden)


def test_system_user_is_unrestricted() -> None:
    principal = _principal("system")
    assert compile_policies(principal, [PolicyKind.COLLECTIONS, PolicyKind.SYSTEM]) == TrueFilter()
    # System users fall back to no restriction even without a system kind.
    assert compile_policies(principal, [PolicyKind.TRANSACTIONS]) == TrueFilter()


def test_collector_without_matching_policy_is_forbidden() -> None:
    # Transactions have no collector rule.
    with pytest.raises(ForbiddenError):
        compile_policies(_principal("collector"), [PolicyKind.TRANSACTIONS, PolicyKind.SYSTEM])


def test_no_policy_kinds_means_no_restriction() -> None:
    assert compile_policies(_principal("collector"), []) == TrueFilter()


def test_any_of_collapses_single_operand() -> None:
    eq = Eq("seller_id", uuid4())
    assert any_of(eq) == eq
    assert isinstance(any_of(eq, Eq("buyer_id", uuid4())), Or)


def test_and_requires_every_operand() -> None:
    seller_id, buyer_id = uuid4(), uuid4()
    both = And((Eq("seller_id", seller_id), Eq("buyer_id", buyer_id)))
    assert matches_row(both, Transaction(seller_id=seller_id, buyer_id=buyer_id))
    assert not matches_row(both, Transaction(seller_id=seller_id, buyer_id=uuid4()))


def test_to_clause_rejects_unknown_columns() -> None:
    with pytest.raises(ValueError):
        to_clause(Eq("no_such_column", 1), Collection)


def test_to_clause_renders_or_of_equalities() -> None:
    organization_id = uuid4()
    clause = to_clause(Or((Eq("seller_id", organization_id), Eq("buyer_id", organization_id))), Transaction)
    rendered = str(clause)
    assert "transactions.seller_id" in rendered
    assert "transactions.buyer_id" in rendered
    assert " OR " in rendered
