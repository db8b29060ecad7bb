"""In-process metrics for cache activity."""
