"""Persistence for the gallery metadata index."""
