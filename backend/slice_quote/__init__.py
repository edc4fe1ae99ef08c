# slice_quote/__init__.py

# This file makes the 'slice_quote' directory a Python package.

from . import core
from . import processes
from . import services

__version__ = "1.0.0"

# Define what gets imported with 'from slice_quote import *'
__all__ = [
    "core",
    "processes",
    "services",
]
