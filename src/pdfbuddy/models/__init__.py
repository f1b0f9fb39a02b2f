"""Pydantic and dataclass models shared across the capture pipeline."""
