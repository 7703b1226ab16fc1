"""Utility modules for image references, versions, the engine and console output."""
