"""AI provider access with fallback, response sanitization, and failure classification."""
