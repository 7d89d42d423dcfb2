"""Secret handling and outbound HTTP."""
