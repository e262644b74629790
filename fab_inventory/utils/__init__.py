"""Small helpers shared across the inventory components."""
