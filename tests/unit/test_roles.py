"""Tests for the tenant role lattice and role claim parsing."""

import pytest

from planilla.core.roles import ROLE_SATISFIES, TenantRole, has_role, parse_role

O, A, M, C, E = (
    TenantRole.OWNER,
    TenantRole.ADMIN,
    TenantRole.MANAGER,
    TenantRole.ACCOUNTANT,
    TenantRole.EMPLOYEE,
)

# (actual, required) -> allowed, all 25 pairs written out
ROLE_TABLE = {
    (O, O): True, (O, A): True, (O, M): True, (O, C): True, (O, E): True,
    (A, O): False, (A, A): True, (A, M): True, (A, C): True, (A, E): True,
    (M, O): False, (M, A): False, (M, M): True, (M, C): True, (M, E): True,
    (C, O): False, (C, A): False, (C, M): False, (C, C): True, (C, E): True,
    (E, O): False, (E, A): False, (E, M): False, (E, C): False, (E, E): True,
}  # fmt: skip


class TestHasRole:
    """Tests for has_role over the full role table."""

    def test_table_covers_every_pair(self):
        assert len(ROLE_TABLE) == len(TenantRole) ** 2

    @pytest.mark.parametrize(("actual", "required"), list(ROLE_TABLE))
    def test_pair(self, actual: TenantRole, required: TenantRole):
        assert has_role(actual, required) is ROLE_TABLE[(actual, required)]

    def test_accountant_does_not_satisfy_manager(self):
        """Manager and Accountant are not ranked by numeric code alone."""
        assert has_role(M, C)
        assert not has_role(C, M)

    def test_every_role_satisfies_itself(self):
        for role in TenantRole:
            assert role in ROLE_SATISFIES[role]


class TestParseRole:
    """Tests for parse_role."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("Owner", O),
            ("admin", A),
            (" MANAGER ", M),
            ("Accountant", C),
            ("Employee", E),
            (0, O),
            (2, M),
            ("3", C),
        ],
    )
    def test_known_values(self, value, expected):
        assert parse_role(value) == expected

    @pytest.mark.parametrize("value", [None, "", "superuser", 7, -1, "99", True, 1.5, []])
    def test_unknown_values_fall_back_to_employee(self, value):
        assert parse_role(value) == E

    def test_label(self):
        assert O.label == "Owner"
        assert C.label == "Accountant"
