"""Wire-level helpers shared across components."""
