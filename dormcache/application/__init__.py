"""Application layer: FastAPI app and services built on the cache."""
