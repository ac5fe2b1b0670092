"""Domain layer - scheduling, media resolution, broadcast supervision and events."""
