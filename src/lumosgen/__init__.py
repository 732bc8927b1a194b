"""Task orchestration core for project content generation."""

__version__ = "0.3.0"
