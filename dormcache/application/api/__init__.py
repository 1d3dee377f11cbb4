"""HTTP API: routes, request/response models, middleware and dependencies."""
