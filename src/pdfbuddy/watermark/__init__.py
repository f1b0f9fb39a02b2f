"""Watermark validation, placement and rendering."""
