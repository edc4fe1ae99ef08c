# processes/__init__.py

# This file makes the 'processes' directory a Python package.

# Expose key submodules
from . import print_3d

# Import commonly-used items from submodules for convenience
from .print_3d import SliceResult, SlicerInvoker, calculate_price, parse_gcode

# Define what gets imported with 'from slice_quote.processes import *'
__all__ = [
    "print_3d",
    "SliceResult",
    "SlicerInvoker",
    "calculate_price",
    "parse_gcode",
]
