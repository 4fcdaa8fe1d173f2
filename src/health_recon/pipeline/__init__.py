"""Document-processing and briefing pipeline stages."""
