"""Domain layer - library, ordering, metrics and playback."""
