"""Membership gate: who may act on which project's tasks."""

from __future__ import annotations

from typing import Optional

from ..errors import AuthorizationError
from .interfaces import MembershipGate
from .model import ROLE_PERMISSIONS, ProjectRole
from .store import _BoardTx


class StoreMembershipGate(MembershipGate):
    """Membership view bound to an open store transaction.

    The commit service builds one per transaction so the authorization read
    and the writes that follow it see the same snapshot under the same lock.
    """

    def __init__(self, tx: _BoardTx) -> None:
        self._tx = tx

    def role_of(self, project_id: str, user_id: str) -> Optional[ProjectRole]:
        member = self._tx.membership(project_id, user_id)
        return member.role if member is not None else None


def authorize(gate: MembershipGate, project_id: str, user_id: str, permission: str) -> ProjectRole:
    """Return the caller's role or raise :class:`AuthorizationError`.

    Must be called before any write so a refusal has no side effects.
    """
    role = gate.role_of(project_id, user_id)
    if role is None:
        raise AuthorizationError("You do not have permission to modify tasks in this project.")
    if permission not in ROLE_PERMISSIONS.get(role, frozenset()):
        raise AuthorizationError(f"Role {role.value} may not {permission.replace('_', ' ')} in this project.")
    return role
