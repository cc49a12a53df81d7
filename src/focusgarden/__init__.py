"""Focus Garden progression engine."""
