"""Task orchestration engine for AI resume, cover letter and interview prep generation."""

__version__ = "0.1.0"
