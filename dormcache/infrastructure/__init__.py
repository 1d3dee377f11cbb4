"""Infrastructure layer: Redis transport, cache tiers and metrics."""
