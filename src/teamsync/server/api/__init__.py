"""HTTP API routes: auth, data buckets and health."""
