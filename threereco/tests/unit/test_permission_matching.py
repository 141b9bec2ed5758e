from __future__ import annotations

from types import SimpleNamespace

import pytest

from threereco.core.errors import ForbiddenError
from threereco.services.authz import (
    PermissionSet,
    authorize,
    effective_permissions,
    matches,
)


def test_global_wildcard_grants_everything() -> None:
    # "*" covers any dotted permission.
    assert matches("*", "materials.view")
    assert PermissionSet(["*"]).allows(["audit_logs.view"])


@pytest.mark.parametrize("required", ["collections", "collections.view", "collections.materials.assign"])
def test_subtree_wildcard_covers_prefix_and_descendants(required: str) -> None:
    # "x.*" admits "x", "x.y" and "x.y.z".
    assert matches("collections.*", required)
    assert PermissionSet(["collections.*"]).allows([required])


def test_concrete_grant_does_not_cover_siblings_or_parent() -> None:
    # "x.y" is not allowed for "x.z" nor for "x" itself.
    granted = PermissionSet(["materials.view"])
    assert granted.allows(["materials.view"])
    assert not granted.allows(["materials.create"])
    assert not granted.allows(["materials"])
    assert not matches("materials.view", "materials.create")


def test_segment_boundaries_are_respected() -> None:
    # A prefix only matches on whole segments.
    assert not matches("materials", "materialsx.view")
    assert not PermissionSet(["materials"]).allows(["materialsx"])
    assert PermissionSet(["materials"]).allows(["materials.view"])


def test_self_refinement_does_not_grant_broad_permission() -> None:
    # "users.update.self" and "users.update.any" are siblings.
    granted = PermissionSet(["users.update.self"])
    assert granted.allows(["users.update.self"])
    assert not granted.allows(["users.update.any"])
    assert not granted.allows(["users.update"])


def test_required_list_is_any_of() -> None:
    granted = PermissionSet(["users.delete.self"])
    assert granted.allows(["users.delete.any", "users.delete.self"])


def test_empty_requirement_admits_and_empty_grant_denies() -> None:
    assert PermissionSet([]).allows([])
    assert not PermissionSet([]).allows(["materials.view"])
    assert not PermissionSet(["", "  "]).allows(["materials.view"])


def test_effective_permissions_unions_direct_and_role_grants() -> None:
    roles = [
        SimpleNamespace(permissions=["materials.view", " collections.* "]),
        SimpleNamespace(permissions=None),
    ]
    assert effective_permissions(["users.view"], roles) == {
        "users.view",
        "materials.view",
        "collections.*",
    }


def test_permission_monotonicity() -> None:
    # Anything a subset allows, the superset allows too.
    smaller = ["materials.view", "collections.*"]
    larger = smaller + ["transactions.view", "users.update.self"]
    candidates = [
        "materials.view",
        "materials.create",
        "collections.materials.assign",
        "transactions.view",
        "users.update.any",
        "roles.delete",
    ]
    for required in candidates:
        if PermissionSet(smaller).allows([required]):
            assert PermissionSet(larger).allows([required])


def test_authorize_raises_forbidden() -> None:
    authorize(PermissionSet(["roles.*"]), ["roles.update"])
    with pytest.raises(ForbiddenError):
        authorize(PermissionSet(["roles.view"]), ["roles.update"])


def test_trie_agrees_with_reference_relation() -> None:
    grants = ["*", "materials", "materials.*", "materials.view", "users.update.self", "collections.materials.*"]
    requirements = [
        "materials",
        "materials.view",
        "materialsx.view",
        "users.update",
        "users.update.self",
        "users.update.any",
        "collections.materials.assign",
        "collections.view",
    ]
    for grant in grants:
        for required in requirements:
            assert PermissionSet([grant]).allows([required]) == matches(grant, required), (grant, required)
