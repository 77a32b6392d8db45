"""HTTP boundary: FastAPI app, request models, rate limit, route deadline."""
