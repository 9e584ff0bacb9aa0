"""Directory service admin API client."""
