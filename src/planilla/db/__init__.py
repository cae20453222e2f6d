"""Database layer for Planilla."""
