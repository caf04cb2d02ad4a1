"""Shared utilities for the Penfold deploy tooling."""
