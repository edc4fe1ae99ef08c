# processes/print_3d/__init__.py

# This file makes the 'print_3d' directory a Python sub-package.

from .gcode_parser import parse_gcode, filament_weight_grams
from .pricing import calculate_price, material_rate
from .slicer import (
    SliceResult,
    SlicerInvoker,
    check_slicer_installation,
    find_slicer_executable,
)

__all__ = [
    "parse_gcode",
    "filament_weight_grams",
    "calculate_price",
    "material_rate",
    "SliceResult",
    "SlicerInvoker",
    "check_slicer_installation",
    "find_slicer_executable",
]
