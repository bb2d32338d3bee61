"""Reputation calculation and per-(player, cohort) approval records."""
