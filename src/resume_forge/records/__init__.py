"""Analysis and application records that generation jobs write into."""
