"""Provider access, catalog caching, fallback invocation and persistence."""
