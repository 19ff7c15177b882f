"""Application layer: use cases, background jobs, titles, artifacts."""
