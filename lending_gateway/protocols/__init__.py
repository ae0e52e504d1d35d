"""Protocol-specific derived fields."""
