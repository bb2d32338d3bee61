"""Turn loop, scheduling and annual cadence events."""
