"""Polsim — demographic reputation and policy simulation engine."""

__version__ = "0.1.0"
