"""CineGen generation orchestration core."""
