"""HTTP API for events, health and statistics."""
