"""Print layout planning."""
