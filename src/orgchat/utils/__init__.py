"""Shared helpers for logging and file IO."""
