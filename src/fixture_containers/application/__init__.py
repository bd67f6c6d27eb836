"""Application layer: coordinates domain services with observability."""
