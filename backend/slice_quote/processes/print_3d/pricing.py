# processes/print_3d/pricing.py

import logging
from typing import Optional

from ...core.common_types import GCodeMetrics, MaterialType, PriceQuote
from ...core.exceptions import InvalidRequestError
from ...core.utils import new_opaque_id, round_money

logger = logging.getLogger(__name__)

CURRENCY = "NGN"

# Material cost per gram in Naira
MATERIAL_RATES_PER_GRAM = {
    MaterialType.PLA: 350.0,
    MaterialType.PETG: 500.0,
    MaterialType.ABS: 700.0,
    MaterialType.RESIN: 1100.0,
}

DEFAULT_MACHINE_HOURLY_RATE = 2000.0  # ₦ per machine hour
DEFAULT_SETUP_FEE = 500.0  # ₦ per unique model


def material_rate(material) -> float:
    """Cost per gram for a material; unknown materials are priced as PLA."""
    try:
        return MATERIAL_RATES_PER_GRAM[MaterialType(material)]
    except ValueError:
        logger.warning(f"No rate for material '{material}', using PLA rate.")
        return MATERIAL_RATES_PER_GRAM[MaterialType.PLA]


def calculate_price(
    metrics: GCodeMetrics,
    material,
    quantity: int = 1,
    gcode_file_ref: str = "",
    machine_hourly_rate: float = DEFAULT_MACHINE_HOURLY_RATE,
    setup_fee: float = DEFAULT_SETUP_FEE,
    quote_id: Optional[str] = None,
) -> PriceQuote:
    """
    Converts slicing metrics into a priced quote.

    material cost = weight x rate, machine cost = hours x hourly rate, plus a
    flat setup fee per model. Components are rounded to 2dp first so that the
    item total always equals the sum of the displayed components.

    Raises:
        InvalidRequestError: If quantity is not a positive integer.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidRequestError(f"quantity must be a positive integer, got {quantity!r}")

    material_cost = round_money(metrics.filament_weight_grams * material_rate(material))
    machine_cost = round_money(metrics.print_time_hours * machine_hourly_rate)
    fee = round_money(setup_fee)
    item_total = round_money(material_cost + machine_cost + fee)
    subtotal = round_money(item_total * quantity)

    quote = PriceQuote(
        quote_id=quote_id or new_opaque_id("Q"),
        gcode_file_ref=gcode_file_ref,
        estimated_weight=round(metrics.filament_weight_grams, 2),
        print_time=round(metrics.print_time_hours, 2),
        machine_cost=machine_cost,
        material_cost=material_cost,
        setup_fee=fee,
        item_total=item_total,
        quantity=quantity,
        subtotal=subtotal,
        currency=CURRENCY,
        layer_count=metrics.layer_count,
        warnings=list(metrics.warnings),
    )
    logger.info(f"Priced quote {quote.quote_id}: weight={quote.estimated_weight}g, time={quote.print_time}h, "
                f"material=₦{material_cost:.2f}, machine=₦{machine_cost:.2f}, setup=₦{fee:.2f}, "
                f"item=₦{item_total:.2f} x {quantity} = ₦{subtotal:.2f}")
    return quote
