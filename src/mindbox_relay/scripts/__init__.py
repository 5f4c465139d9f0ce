"""Maintenance scripts for the Mindbox relay."""
