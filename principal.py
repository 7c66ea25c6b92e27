from dataclasses import dataclass

from errors import AuthorizationError
from models import Role


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a core operation."""

    user_id: int
    role: str

    @classmethod
    def from_user(cls, user):
        return cls(user_id=user.id, role=user.role)

    @property
    def is_librarian(self):
        return self.role == Role.LIBRARIAN


def require_role(principal, *roles):
    if principal is None or principal.role not in roles:
        raise AuthorizationError("You are not allowed to perform this action.")


def require_self_or_librarian(principal, user_id):
    require_role(principal, *Role.ALL)
    if principal.user_id != user_id and not principal.is_librarian:
        raise AuthorizationError("You can only act on your own account.")
