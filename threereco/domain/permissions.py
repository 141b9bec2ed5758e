from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable


@dataclass(frozen=True)
class Permission:
    label: str
    value: str
    description: str


@dataclass(frozen=True)
class PermissionGroup:
    name: str
    permissions: tuple[Permission, ...]
    sub_groups: tuple["PermissionGroup", ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "permissions": [
                {"label": p.label, "value": p.value, "description": p.description}
                for p in self.permissions
            ],
            "subGroups": [group.to_dict() for group in self.sub_groups],
        }


def _crud(noun: str, prefix: str, *, singular: str | None = None) -> tuple[Permission, ...]:
    # Standard all/access/view/create/update/delete block for a module.
    one = singular or noun.rstrip("s")
    lowered = noun.lower()
    return (
        Permission(f"All {noun}", f"{prefix}.*", f"Allows the user to perform any action on {lowered}."),
        Permission(f"Access {noun}", f"{prefix}.access", f"Allows the user to access the {lowered} module."),
        Permission(f"View {noun}", f"{prefix}.view", f"Allows the user to view {lowered}."),
        Permission(f"Create {one}", f"{prefix}.create", f"Allows the user to create new {lowered}."),
        Permission(f"Update {one}", f"{prefix}.update", f"Allows the user to update existing {lowered}."),
        Permission(f"Delete {one}", f"{prefix}.delete", f"Allows the user to delete existing {lowered}."),
    )


def _materials_sub_group(parent: str, noun: str) -> PermissionGroup:
    lowered = noun.lower()
    return PermissionGroup(
        name=f"{noun} Materials",
        permissions=_crud(f"{noun} Materials", f"{parent}.materials", singular=f"{noun} Material")
        + (
            Permission(
                f"Assign Materials to {noun}",
                f"{parent}.materials.assign",
                f"Allows the user to assign materials to {lowered}s.",
            ),
            Permission(
                f"Unassign Materials from {noun}",
                f"{parent}.materials.unassign",
                f"Allows the user to unassign materials from {lowered}s.",
            ),
        ),
    )


PERMISSION_GROUPS: tuple[PermissionGroup, ...] = (
    PermissionGroup(name="Materials", permissions=_crud("Materials", "materials")),
    PermissionGroup(
        name="Products",
        permissions=_crud("Products", "products")
        + (
            Permission(
                "Assign Materials to Product",
                "products.materials.assign",
                "Allows the user to assign materials to products.",
            ),
            Permission(
                "Unassign Materials from Product",
                "products.materials.unassign",
                "Allows the user to unassign materials from products.",
            ),
        ),
    ),
    PermissionGroup(
        name="Collections",
        permissions=_crud("Collections", "collections"),
        sub_groups=(_materials_sub_group("collections", "Collection"),),
    ),
    PermissionGroup(
        name="Transactions",
        permissions=_crud("Transactions", "transactions"),
        sub_groups=(
            _materials_sub_group("transactions", "Transaction"),
            PermissionGroup(
                name="Transaction Products",
                permissions=(
                    Permission(
                        "Assign Products to Transaction",
                        "transactions.products.assign",
                        "Allows the user to assign products to transactions.",
                    ),
                    Permission(
                        "Unassign Products from Transaction",
                        "transactions.products.unassign",
                        "Allows the user to unassign products from transactions.",
                    ),
                ),
            ),
        ),
    ),
    PermissionGroup(
        name="Users",
        permissions=(
            Permission("All Users", "users.*", "Allows the user to perform any action on users."),
            Permission("Access Users", "users.access", "Allows the user to access the users module."),
            Permission("View User", "users.view", "Allows the user to view a user."),
            Permission("Create User", "users.create", "Allows the user to create new users."),
            Permission("Update Any User", "users.update.any", "Allows the user to update any user."),
            Permission(
                "Update Self", "users.update.self", "Allows the user to update their own user details."
            ),
            Permission("Delete Any User", "users.delete.any", "Allows the user to delete any user."),
            Permission(
                "Delete Self", "users.delete.self", "Allows the user to delete their own user account."
            ),
            Permission(
                "Manage MFA",
                "users.mfa.manage",
                "Allows the user to manage multi-factor authentication settings.",
            ),
        ),
    ),
    PermissionGroup(
        name="Businesses",
        permissions=_crud("Businesses", "businesses", singular="Business"),
        sub_groups=(
            PermissionGroup(
                name="Business Users",
                permissions=(
                    Permission(
                        "All Business Users",
                        "businesses.users.*",
                        "Allows the user to perform any action on business users.",
                    ),
                    Permission(
                        "Access Business Users",
                        "businesses.users.access",
                        "Allows the user to access the business users module.",
                    ),
                    Permission(
                        "View Business Users", "businesses.users.view", "Allows the user to view business users."
                    ),
                    Permission(
                        "Assign Business User",
                        "businesses.users.assign",
                        "Allows the user to assign users to businesses.",
                    ),
                    Permission(
                        "Unassign Business User",
                        "businesses.users.unassign",
                        "Allows the user to unassign users from businesses.",
                    ),
                ),
            ),
            PermissionGroup(
                name="Business Roles",
                permissions=(
                    Permission(
                        "All Business Roles",
                        "businesses.roles.*",
                        "Allows the user to perform any action on business roles.",
                    ),
                    Permission(
                        "Access Business Roles",
                        "businesses.roles.access",
                        "Allows the user to access the business roles module.",
                    ),
                    Permission(
                        "View Business Roles", "businesses.roles.view", "Allows the user to view business roles."
                    ),
                    Permission(
                        "Assign Business Role",
                        "businesses.roles.assign",
                        "Allows the user to assign roles to businesses.",
                    ),
                    Permission(
                        "Unassign Business Role",
                        "businesses.roles.unassign",
                        "Allows the user to unassign roles from businesses.",
                    ),
                ),
            ),
        ),
    ),
    PermissionGroup(name="Roles", permissions=_crud("Roles", "roles")),
    PermissionGroup(
        name="Bank Details",
        permissions=_crud("Bank Details", "bank_details", singular="Bank Details"),
    ),
    PermissionGroup(name="Notifications", permissions=_crud("Notifications", "notifications")),
    PermissionGroup(
        name="Audit Logs",
        permissions=(
            Permission("View Audit Logs", "audit_logs.view", "Allows the user to view audit logs."),
        ),
    ),
    PermissionGroup(
        name="Permissions",
        permissions=(
            Permission(
                "View Permissions", "permissions.view", "Allows the user to view available permissions."
            ),
        ),
    ),
)

GLOBAL_PERMISSION = "*"


def _walk(groups: Iterable[PermissionGroup]) -> Iterable[Permission]:
    for group in groups:
        yield from group.permissions
        yield from _walk(group.sub_groups)


_ALL_VALUES: frozenset[str] = frozenset(p.value for p in _walk(PERMISSION_GROUPS)) | {GLOBAL_PERMISSION}


def all_permission_values() -> frozenset[str]:
    return _ALL_VALUES


def is_known_permission(value: str) -> bool:
    """Return True for catalogue values and dotted refinements of concrete ones.

    ``users.view.self`` is accepted because ``users.view`` is in the catalogue;
    ``users.*.self`` is not, since wildcards only terminate a permission.
    """
    value = value.strip()
    if value in _ALL_VALUES:
        return True
    if "*" in value:
        return False
    segments = value.split(".")
    for end in range(len(segments) - 1, 0, -1):
        if ".".join(segments[:end]) in _ALL_VALUES:
            return True
    return False


def validate_permissions(values: Iterable[str]) -> list[str]:
    # Trim, de-duplicate while preserving order, and reject unknown strings.
    seen: dict[str, None] = {}
    unknown: list[str] = []
    for raw in values:
        value = raw.strip()
        if not value:
            continue
        if not is_known_permission(value):
            unknown.append(value)
            continue
        seen.setdefault(value, None)
    if unknown:
        raise ValueError(f"Unknown permissions: {', '.join(sorted(unknown))}")
    return list(seen)
