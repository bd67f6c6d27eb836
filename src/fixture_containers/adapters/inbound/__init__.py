"""Inbound adapters for fixture containers.

Provides the command-line demo entry point.
"""
