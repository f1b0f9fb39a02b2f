"""PDF assembly."""
