"""Capture pipeline: scroll capture and the end-to-end orchestrator."""
