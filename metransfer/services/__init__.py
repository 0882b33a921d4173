"""Gallery operations, derivative generation, archive streaming and index reconciliation."""
