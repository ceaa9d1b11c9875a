"""NoteLink AI provider layer."""

__version__ = "1.0.0"
