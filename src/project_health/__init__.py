"""Project health scoring service."""
