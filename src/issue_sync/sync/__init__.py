"""Sync orchestration engine."""
