"""NPC vote simulation and election lifecycle."""
