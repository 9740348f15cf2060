"""Server-side pipeline jobs: processor, prep-guide stages, and cover letters."""
