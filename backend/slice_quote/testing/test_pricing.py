# testing/test_pricing.py

import pytest

from slice_quote.core.common_types import GCodeMetrics, MaterialType, PriceQuote
from slice_quote.core.exceptions import InvalidRequestError
from slice_quote.processes.print_3d.pricing import (
    CURRENCY,
    MATERIAL_RATES_PER_GRAM,
    calculate_price,
    material_rate,
)


def _metrics(weight_g: float = 10.0, hours: float = 1.5, layers: int = 100, warnings=None) -> GCodeMetrics:
    return GCodeMetrics(
        print_time_seconds=hours * 3600,
        print_time_hours=hours,
        filament_length_mm=weight_g * 100,
        filament_weight_grams=weight_g,
        layer_count=layers,
        material_type="PLA",
        warnings=warnings or [],
    )


def test_price_components():
    quote = calculate_price(_metrics(weight_g=10.0, hours=1.5), MaterialType.PLA, gcode_file_ref="model-1-abc.gcode")

    assert isinstance(quote, PriceQuote)
    assert quote.material_cost == pytest.approx(3500.0)
    assert quote.machine_cost == pytest.approx(3000.0)
    assert quote.setup_fee == pytest.approx(500.0)
    assert quote.item_total == pytest.approx(7000.0)
    assert quote.subtotal == pytest.approx(7000.0)
    assert quote.quantity == 1
    assert quote.currency == CURRENCY == "NGN"
    assert quote.layer_count == 100
    assert quote.gcode_file_ref == "model-1-abc.gcode"
    assert quote.quote_id.startswith("Q-")


@pytest.mark.parametrize("material", list(MaterialType))
def test_material_rates(material):
    quote = calculate_price(_metrics(weight_g=2.0, hours=0), material)
    assert quote.material_cost == pytest.approx(2.0 * MATERIAL_RATES_PER_GRAM[material])


def test_unknown_material_uses_pla_rate():
    assert material_rate("Nylon") == MATERIAL_RATES_PER_GRAM[MaterialType.PLA]
    assert material_rate("Resin") == MATERIAL_RATES_PER_GRAM[MaterialType.RESIN]


@pytest.mark.parametrize("quantity", [1, 2, 3, 7, 50])
def test_subtotal_linear_in_quantity(quantity):
    quote = calculate_price(_metrics(weight_g=3.333, hours=0.777), MaterialType.PETG, quantity=quantity)
    assert quote.subtotal == pytest.approx(quote.item_total * quantity, abs=0.01)
    assert quote.quantity == quantity


def test_item_total_equals_displayed_components():
    # Values chosen so each component has a third decimal place
    quote = calculate_price(_metrics(weight_g=1.23456, hours=0.123456), MaterialType.ABS)
    assert quote.item_total == round(quote.material_cost + quote.machine_cost + quote.setup_fee, 2)
    for value in (quote.material_cost, quote.machine_cost, quote.item_total, quote.subtotal):
        assert round(value, 2) == value


def test_configurable_rates():
    quote = calculate_price(_metrics(weight_g=0, hours=2), MaterialType.PLA, machine_hourly_rate=1000, setup_fee=0)
    assert quote.machine_cost == pytest.approx(2000.0)
    assert quote.setup_fee == 0
    assert quote.item_total == pytest.approx(2000.0)


def test_zero_time_gives_zero_machine_cost():
    quote = calculate_price(_metrics(weight_g=5, hours=0, warnings=["print time annotation not found"]), MaterialType.PLA)
    assert quote.machine_cost == 0
    assert quote.item_total == pytest.approx(quote.material_cost + quote.setup_fee)
    assert quote.warnings == ["print time annotation not found"]


@pytest.mark.parametrize("quantity", [0, -1, True, 1.5, "2"])
def test_invalid_quantity_rejected(quantity):
    with pytest.raises(InvalidRequestError):
        calculate_price(_metrics(), MaterialType.PLA, quantity=quantity)


def test_fresh_quote_id_per_call():
    metrics = _metrics()
    ids = {calculate_price(metrics, MaterialType.PLA).quote_id for _ in range(20)}
    assert len(ids) == 20


def test_camel_case_serialization():
    data = calculate_price(_metrics(), MaterialType.PLA).model_dump(by_alias=True)
    for key in ("quoteId", "gcodeFileRef", "estimatedWeight", "printTime", "machineCost",
                "materialCost", "setupFee", "itemTotal", "subtotal", "currency", "layerCount"):
        assert key in data
