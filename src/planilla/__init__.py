"""Planilla - multi-tenant payroll platform core."""

__version__ = "0.1.0"
