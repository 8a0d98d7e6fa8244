"""Logging, metrics and audit instrumentation."""
