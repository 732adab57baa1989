"""Server module - Persistent store, sync gateway, team hub and HTTP API."""
