"""
Roles and the containment rule between them.

``admin`` implies every other role; the rest only imply themselves.
"""

from enum import Enum


class Role(str, Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    LAUNDROMAT_STAFF = "laundromat_staff"
    ADMIN = "admin"


ROLE_IMPLIES = {
    Role.ADMIN: frozenset(Role),
    Role.LAUNDROMAT_STAFF: frozenset({Role.LAUNDROMAT_STAFF}),
    Role.DRIVER: frozenset({Role.DRIVER}),
    Role.CUSTOMER: frozenset({Role.CUSTOMER}),
}


def parse_roles(values):
    """Turn stored role strings into ``Role`` members, ignoring unknown names."""
    roles = set()
    for value in values or ():
        try:
            roles.add(Role(value))
        except ValueError:
            continue
    return frozenset(roles)


def effective_roles(roles):
    granted = set()
    for role in roles:
        granted |= ROLE_IMPLIES[role]
    return frozenset(granted)


def has_role(roles, required):
    """True if any held role implies any of ``required``."""
    if isinstance(required, Role):
        required = (required,)
    granted = effective_roles(roles)
    return any(Role(r) in granted for r in required)
