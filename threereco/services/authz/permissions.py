"""Hierarchical permission evaluation.

Permissions are dotted strings (``collections.materials.assign``). A grant
matches a requirement when it is the global wildcard ``*``, equal to it, a
``x.*`` subtree wildcard covering it, or a plain dotted prefix of it. Matching
happens on whole segments, so ``materials`` never grants ``materialsx``.
"""

from __future__ import annotations

from typing import Any, Iterable

from threereco.core.errors import ForbiddenError


GLOBAL_WILDCARD = "*"
SUBTREE_SUFFIX = ".*"


def _grant_prefix(permission: str) -> str:
    permission = permission.strip()
    if permission.endswith(SUBTREE_SUFFIX):
        return permission[: -len(SUBTREE_SUFFIX)]
    return permission


def matches(granted: str, required: str) -> bool:
    """Reference form of the relation that ``PermissionSet`` evaluates through its trie."""
    granted = granted.strip()
    required = required.strip()
    if not granted or not required:
        return False
    if granted == GLOBAL_WILDCARD or granted == required:
        return True
    prefix = _grant_prefix(granted)
    if not prefix:
        return False
    # Subtree wildcards and implicit prefixes both cover the prefix itself and anything below it.
    return required == prefix or required.startswith(prefix + ".")


def effective_permissions(direct: Iterable[str] | None, roles: Iterable[Any] = ()) -> set[str]:
    combined: set[str] = set()
    for permission in direct or ():
        if permission and permission.strip():
            combined.add(permission.strip())
    for role in roles:
        for permission in role.permissions or ():
            if permission and permission.strip():
                combined.add(permission.strip())
    return combined


class PermissionSet:
    """Effective permissions compiled into a trie keyed on dot segments.

    A terminal node grants its own path and every descendant path.
    """

    _TERMINAL = object()

    def __init__(self, permissions: Iterable[str]) -> None:
        self._root: dict[Any, Any] = {}
        self._global = False
        self._empty = True
        for permission in permissions:
            self._add(permission)

    def _add(self, permission: str) -> None:
        permission = permission.strip()
        if not permission:
            return
        self._empty = False
        if permission == GLOBAL_WILDCARD:
            self._global = True
            return
        node = self._root
        for segment in _grant_prefix(permission).split("."):
            node = node.setdefault(segment, {})
        node[self._TERMINAL] = True

    @property
    def empty(self) -> bool:
        return self._empty

    def grants(self, required: str) -> bool:
        required = required.strip()
        if not required:
            return False
        if self._global:
            return True
        node = self._root
        for segment in required.split("."):
            node = node.get(segment)
            if node is None:
                return False
            if self._TERMINAL in node:
                return True
        return False

    def allows(self, required: Iterable[str]) -> bool:
        """Any-of check; an empty requirement list admits any authenticated principal."""
        required = list(required)
        if not required:
            return True
        if self._empty:
            return False
        return any(self.grants(item) for item in required)


def authorize(granted: PermissionSet, required: Iterable[str]) -> None:
    if not granted.allows(required):
        raise ForbiddenError()
