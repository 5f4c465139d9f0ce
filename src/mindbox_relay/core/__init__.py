"""Core configuration for the Mindbox relay."""
