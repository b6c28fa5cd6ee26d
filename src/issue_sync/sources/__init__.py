"""Source API clients."""
