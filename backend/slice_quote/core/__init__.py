# core/__init__.py

# This file makes the 'core' directory a Python package.

from . import common_types
from . import exceptions
from . import geometry
from . import utils

# Define what gets imported with 'from slice_quote.core import *'
__all__ = [
    "common_types",
    "exceptions",
    "geometry",
    "utils",
]
