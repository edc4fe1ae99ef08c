# api/routers/__init__.py

from . import slicer

__all__ = ["slicer"]
