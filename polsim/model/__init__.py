"""Demographic cohorts, political positions and the issue catalog."""
