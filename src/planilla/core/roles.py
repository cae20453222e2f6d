"""Tenant roles and the role satisfaction lattice.

Roles are ordered by descending privilege (Owner is 0). Authorization
checks go through :func:`has_role`, which is a lookup into
``ROLE_SATISFIES`` rather than a comparison of the numeric codes: Manager
and Accountant are not simply ranked, Manager satisfies Accountant but not
the other way round.
"""

from enum import IntEnum


class TenantRole(IntEnum):
    """Privilege level of a tenant member."""

    OWNER = 0
    ADMIN = 1
    MANAGER = 2
    ACCOUNTANT = 3
    EMPLOYEE = 4

    @property
    def label(self) -> str:
        """Display name used in credentials and API payloads."""
        return self.name.capitalize()


ROLE_SATISFIES: dict[TenantRole, frozenset[TenantRole]] = {
    TenantRole.OWNER: frozenset(TenantRole),
    TenantRole.ADMIN: frozenset(TenantRole) - {TenantRole.OWNER},
    TenantRole.MANAGER: frozenset(
        {TenantRole.MANAGER, TenantRole.ACCOUNTANT, TenantRole.EMPLOYEE}
    ),
    TenantRole.ACCOUNTANT: frozenset({TenantRole.ACCOUNTANT, TenantRole.EMPLOYEE}),
    TenantRole.EMPLOYEE: frozenset({TenantRole.EMPLOYEE}),
}


def has_role(actual: TenantRole, required: TenantRole) -> bool:
    """Return True if a member holding ``actual`` may act as ``required``."""
    return required in ROLE_SATISFIES[actual]


def parse_role(value: object) -> TenantRole:
    """Parse a role claim encoded as a name or numeric code.

    Unknown, missing or malformed values resolve to ``EMPLOYEE``; a role is
    never escalated on ambiguity.
    """
    if isinstance(value, bool) or value is None:
        return TenantRole.EMPLOYEE

    if isinstance(value, int):
        try:
            return TenantRole(value)
        except ValueError:
            return TenantRole.EMPLOYEE

    if isinstance(value, str):
        text = value.strip()
        member = TenantRole.__members__.get(text.upper())
        if member is not None:
            return member
        if text.isdigit():
            return parse_role(int(text))

    return TenantRole.EMPLOYEE
