"""Penfold deployment orchestrator: build, ship, activate, verify, roll back."""

__version__ = "0.1.0"
