# src/__init__.py - v1
"""scribbledoc: batch handwritten-note transcription.

Public entry points live in ``scribbledoc.api.session`` and the
``scribbledoc`` console script (``scribbledoc.main``).
"""

from scribbledoc.version import __version__

__all__ = ["__version__"]
