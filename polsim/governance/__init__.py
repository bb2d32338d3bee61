"""Policy lifecycle and campaigns."""
