"""Push relay for registered Apple devices."""
