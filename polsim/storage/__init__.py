"""Store contracts and their in-memory and SQL implementations."""
