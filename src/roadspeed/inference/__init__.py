"""Per-frame pipeline glue."""
