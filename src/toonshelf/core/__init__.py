"""Core infrastructure: configuration, exceptions and async helpers."""
