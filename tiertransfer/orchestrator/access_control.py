"""AccessControl — owner и admin роли для административных операций."""

from typing import Set

from tiertransfer.core.domain.units import validate_account_id
from tiertransfer.core.errors import InvalidArgument, Unauthorized


class AccessControl:
    """
    Owner задаётся при создании и всегда является admin.
    Выдавать и отзывать admin может только owner.
    """

    def __init__(self, owner: str):
        self.owner = validate_account_id(owner, role="owner")
        self._admins: Set[str] = {self.owner}

    def is_admin(self, caller: str) -> bool:
        return isinstance(caller, str) and caller.lower() in self._admins

    def require_admin(self, caller: str) -> None:
        if not self.is_admin(caller):
            raise Unauthorized(f"caller {caller!r} is not an admin")

    def require_owner(self, caller: str) -> None:
        if not isinstance(caller, str) or caller.lower() != self.owner:
            raise Unauthorized(f"caller {caller!r} is not the owner")

    def grant_admin(self, caller: str, account_id: str) -> None:
        self.require_owner(caller)
        self._admins.add(validate_account_id(account_id, role="admin"))

    def revoke_admin(self, caller: str, account_id: str) -> None:
        self.require_owner(caller)
        key = validate_account_id(account_id, role="admin")
        if key == self.owner:
            raise InvalidArgument("owner admin role cannot be revoked")
        self._admins.discard(key)
