"""
Application package for the MeTransfer gallery service.

The on-disk artifact store is authoritative; the metadata index, thumbnails
and social previews are caches that are rebuilt from it on demand.
"""

__version__ = "0.1.0"
