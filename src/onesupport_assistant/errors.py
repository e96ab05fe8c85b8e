"""Exceptions raised by the assistant package."""


class AssistantError(Exception):
    """Raised when retrieval or generation cannot complete."""
