"""Filesystem layout for originals and derived artifacts."""

from .filesystem import ArtifactStore  # noqa: F401
