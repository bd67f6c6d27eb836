"""Fixture containers domain layer."""
