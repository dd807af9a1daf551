"""Priority task queue with circuit breaking and AI model routing."""

__version__ = "0.1.0"
