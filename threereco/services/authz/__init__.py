from threereco.services.authz.permissions import (
    PermissionSet,
    authorize,
    effective_permissions,
    matches,
)
from threereco.services.authz.policies import PolicyKind, compile_policies

__all__ = [
    "PermissionSet",
    "PolicyKind",
    "authorize",
    "compile_policies",
    "effective_permissions",
    "matches",
]
