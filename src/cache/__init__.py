"""In-memory TTL cache store."""
