"""
livecheck — incremental per-statement verification of live documents.
"""

__version__ = "0.1.0"
