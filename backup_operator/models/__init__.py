"""Custom resource and Icarus wire models."""
