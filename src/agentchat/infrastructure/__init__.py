"""Infrastructure adapters: SQLite stores, auth, rate limiting, models."""
