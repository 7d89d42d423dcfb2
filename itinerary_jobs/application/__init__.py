"""Process-level wiring."""
