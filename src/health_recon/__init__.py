"""Document-processing and briefing pipeline for healthcare account intelligence."""

__version__ = "0.1.0"
