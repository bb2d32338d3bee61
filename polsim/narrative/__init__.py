"""Text-generation collaborator."""
