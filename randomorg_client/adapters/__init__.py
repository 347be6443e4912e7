"""Adapters for the outside world (network transports)."""
