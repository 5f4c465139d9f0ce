"""HTTP API of the Mindbox relay."""
