"""Shared infrastructure: exceptions, logging, redaction helpers."""
