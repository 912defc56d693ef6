"""Utility modules: structured logging and UTC time helpers."""
