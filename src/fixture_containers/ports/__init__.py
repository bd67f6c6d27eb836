"""Ports: interfaces between the domain and the container runtime."""
