"""Observability — process-wide logging setup and secret redaction."""
