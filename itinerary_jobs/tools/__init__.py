"""Provider interfaces."""
