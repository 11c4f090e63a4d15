"""pytest integration."""
