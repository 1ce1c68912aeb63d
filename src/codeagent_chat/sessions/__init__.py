"""Chat session persistence."""
