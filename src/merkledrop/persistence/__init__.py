"""Persistence: append-only event log and JSON state store."""
