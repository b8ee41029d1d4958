"""Logging and numeric helpers."""
