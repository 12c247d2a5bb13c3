"""Utility modules for deployhook."""
