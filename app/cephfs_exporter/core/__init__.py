"""Core traversal, registry and collection logic."""
