"""Host browser capabilities: viewport capture, page messaging, downloads."""
