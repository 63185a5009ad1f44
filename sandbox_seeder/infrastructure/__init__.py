"""Infrastructure layer - caching and monitoring."""
