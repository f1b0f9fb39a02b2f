"""Persistence for templates and the last-used watermark."""
