# processes/print_3d/gcode_parser.py

import logging
import math
import re
from typing import Iterable, List, Optional, Union

from ...core.common_types import GCodeMetrics

logger = logging.getLogger(__name__)

FILAMENT_DIAMETER_MM = 1.75
FILAMENT_RADIUS_MM = FILAMENT_DIAMETER_MM / 2

# Material densities (g/cm³)
MATERIAL_DENSITIES = {
    "PLA": 1.24,
    "PETG": 1.27,
    "ABS": 1.04,
    "RESIN": 1.10,  # Not used by FDM engines; included for consistency
}
DEFAULT_DENSITY = MATERIAL_DENSITIES["PLA"]

# Engine annotation markers (';TIME:1234', ';LAYER_COUNT:120')
TIME_MARKER = ";TIME:"
LAYER_COUNT_MARKER = ";LAYER_COUNT:"
LAYER_CHANGE_MARKER = ";LAYER_CHANGE"

# PrusaSlicer summary comments, e.g.
# '; estimated printing time (normal mode) = 1d 2h 32m 15s'
# '; filament used [mm] = 1234.56'
ESTIMATED_TIME_RE = re.compile(r"^;\s*estimated printing time(?: \(normal mode\))?\s*=\s*(.+)$")
DURATION_PART_RE = re.compile(r"(\d+)\s*([dhms])")
FILAMENT_USED_MM_RE = re.compile(r"^;\s*filament used \[mm\]\s*=\s*([\d.]+)")
EXTRUSION_RE = re.compile(r"(?<![A-Za-z])E(-?\d*\.?\d+)")
MARKER_VALUE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*$")
MOVE_COMMAND_RE = re.compile(r"^G0*[01](?!\d)")

_DURATION_UNITS = {"d": 86400, "h": 3600, "m": 60, "s": 1}


def material_density(material: str) -> float:
    """Density (g/cm³) for a material; unknown materials fall back to PLA."""
    return MATERIAL_DENSITIES.get(str(material).upper(), DEFAULT_DENSITY)


def filament_weight_grams(length_mm: float, material: str) -> float:
    """Weight of a 1.75mm filament cylinder of the given length."""
    volume_mm3 = length_mm * math.pi * FILAMENT_RADIUS_MM ** 2
    return (volume_mm3 / 1000.0) * material_density(material)


def _marker_value(text: str) -> Optional[int]:
    match = MARKER_VALUE_RE.match(text)
    if not match:
        return None
    return int(float(match.group(1)))


def _parse_duration(text: str) -> Optional[int]:
    parts = DURATION_PART_RE.findall(text)
    if not parts:
        return None
    return sum(int(value) * _DURATION_UNITS[unit] for value, unit in parts)


def parse_gcode(gcode_content: Union[str, Iterable[str], None], material: str) -> GCodeMetrics:
    """
    Extracts print time, filament consumption and layer count from slicer G-code.

    Never raises: missing or malformed directives degrade to zero-valued fields,
    and each missing signal is recorded in ``GCodeMetrics.warnings``.

    Extrusion values are cumulative absolute, so filament length is the largest
    E value seen on any G0/G1 move rather than their sum.

    Args:
        gcode_content: Full text of the G-code file, or an iterable of its
            lines (an open file works and is read one line at a time).
        material: Material identifier used for the density lookup.

    Returns:
        A GCodeMetrics instance.
    """
    print_time_seconds: Optional[int] = None
    estimated_time_seconds: Optional[int] = None
    layer_count: Optional[int] = None
    layer_changes = 0
    max_e = 0.0
    saw_extrusion = False
    summary_filament_mm: Optional[float] = None
    warnings: List[str] = []

    if gcode_content is None:
        lines: Iterable[str] = ()
    elif isinstance(gcode_content, str):
        lines = gcode_content.splitlines()
    else:
        lines = gcode_content

    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith(";"):
            if line.startswith(TIME_MARKER):
                value = _marker_value(line[len(TIME_MARKER):])
                if value is None:
                    warnings.append(f"malformed print time annotation: {line[:60]}")
                else:
                    print_time_seconds = value
            elif line.startswith(LAYER_COUNT_MARKER):
                value = _marker_value(line[len(LAYER_COUNT_MARKER):])
                if value is None:
                    warnings.append(f"malformed layer count annotation: {line[:60]}")
                else:
                    layer_count = value
            elif line.startswith(LAYER_CHANGE_MARKER):
                layer_changes += 1
            else:
                time_match = ESTIMATED_TIME_RE.match(line)
                if time_match and estimated_time_seconds is None:
                    estimated_time_seconds = _parse_duration(time_match.group(1))
                    continue
                used_match = FILAMENT_USED_MM_RE.match(line)
                if used_match:
                    try:
                        summary_filament_mm = float(used_match.group(1))
                    except ValueError:
                        pass
            continue

        command = line.split(";", 1)[0].strip()
        # G0/G1 and their zero-padded forms, not G10/G11
        if not MOVE_COMMAND_RE.match(command):
            continue
        e_match = EXTRUSION_RE.search(command)
        if e_match:
            try:
                e_value = float(e_match.group(1))
            except ValueError:
                continue
            saw_extrusion = True
            if e_value > max_e:
                max_e = e_value

    if print_time_seconds is None:
        if estimated_time_seconds is not None:
            print_time_seconds = estimated_time_seconds
        else:
            print_time_seconds = 0
            warnings.append("print time annotation not found")

    if layer_count is None:
        if layer_changes > 0:
            layer_count = layer_changes
        else:
            layer_count = 0
            warnings.append("layer count annotation not found")

    filament_length_mm = max_e
    if not saw_extrusion or max_e <= 0:
        if summary_filament_mm is not None:
            filament_length_mm = summary_filament_mm
        else:
            filament_length_mm = 0.0
            warnings.append("no extrusion values found")

    weight = filament_weight_grams(filament_length_mm, material)

    if warnings:
        logger.warning(f"G-code metrics incomplete for material {material}: {', '.join(warnings)}")
    logger.debug(f"Parsed G-code: time={print_time_seconds}s, filament={filament_length_mm:.2f}mm, "
                 f"weight={weight:.2f}g, layers={layer_count}")

    return GCodeMetrics(
        print_time_seconds=float(print_time_seconds),
        print_time_hours=print_time_seconds / 3600,
        filament_length_mm=filament_length_mm,
        filament_weight_grams=weight,
        layer_count=layer_count,
        material_type=str(material),
        warnings=warnings,
    )
