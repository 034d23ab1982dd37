"""Envelope-budgeting reconciliation core."""
