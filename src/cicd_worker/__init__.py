"""Continuous-delivery worker.

Polls configured git checkouts for upstream changes, pulls them, rebuilds
release binaries and installs them into a shared directory while the
dependent system service is paused.
"""

__version__ = "0.1.0"
