"""Capability roles carried in the access token."""

import enum
from typing import FrozenSet, Iterable, Union


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    DELIVERY_MANAGER = "DELIVERY_MANAGER"
    DELIVERY_EXECUTIVE = "DELIVERY_EXECUTIVE"
    SELLER = "SELLER"
    CUSTOMER = "CUSTOMER"


class RoleSet:
    """
    Immutable set of roles held by a principal.

    The ``roles`` claim is usually a list, but older tokens carry a single
    comma-joined string ("DELIVERY_MANAGER,ADMIN"). Both parse to the same set.
    Unknown role names are ignored.
    """

    def __init__(self, roles: Iterable[Role] = ()):
        self._roles: FrozenSet[Role] = frozenset(roles)

    @classmethod
    def parse(cls, claim: Union[str, Iterable[str], None]) -> "RoleSet":
        if claim is None:
            return cls()
        if isinstance(claim, str):
            names = claim.split(",")
        else:
            names = list(claim)

        roles = []
        for name in names:
            if not isinstance(name, str):
                continue
            key = name.strip().upper()
            if key in Role.__members__:
                roles.append(Role[key])
        return cls(roles)

    def has_any(self, *roles: Role) -> bool:
        return any(role in self._roles for role in roles)

    def has_all(self, *roles: Role) -> bool:
        return all(role in self._roles for role in roles)

    def __contains__(self, role: Role) -> bool:
        return role in self._roles

    def __iter__(self):
        return iter(sorted(self._roles, key=lambda r: r.value))

    def __len__(self) -> int:
        return len(self._roles)

    def __repr__(self) -> str:
        return f"RoleSet({[r.value for r in self]})"
