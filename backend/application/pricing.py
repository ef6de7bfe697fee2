"""Table-time and menu pricing for a running session."""
from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from app.config import AppConfig
from domain.bill import BillDraft, LineItem, TableRate
from domain.cart import CartItem
from domain.session import TimeOption

logger = logging.getLogger(__name__)

HOURLY_RATE_THRESHOLD = 100.0


def coerce_amount(value: Any) -> float:
    """Missing, non-numeric or negative values price as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        return 0.0
    return amount


def coerce_quantity(value: Any) -> int:
    return int(coerce_amount(value))


def normalize_rate(value: Any, threshold: float = HOURLY_RATE_THRESHOLD) -> Tuple[float, bool]:
    """
    Upstream data sometimes stores a price per hour in the per-minute field.
    Anything above ``threshold`` is read as hourly and divided by 60.
    """
    rate = coerce_amount(value)
    if rate > threshold:
        return rate / 60.0, True
    return rate, False


def billable_minutes(booked_seconds: int, remaining_seconds: int, *, early_checkout: bool) -> int:
    """
    Preview and natural expiry bill the whole booked window; an early
    checkout bills only the elapsed part. Both round up to whole minutes.
    """
    booked = max(0, int(booked_seconds))
    if early_checkout:
        elapsed = booked - max(0, int(remaining_seconds))
        return math.ceil(max(0, elapsed) / 60)
    return math.ceil(booked / 60)


class PricingCalculator:
    """Stateless once built; every call recomputes the draft from scratch."""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config
        self._apply_pricing_config()

    def _apply_pricing_config(self) -> None:
        pricing_cfg = (self.config.pricing if self.config else None) or {}
        self.default_price_per_minute = float(pricing_cfg.get("default_price_per_minute", 10.0))
        self.default_price_per_frame = float(pricing_cfg.get("default_price_per_frame", 100.0))
        self.default_frame_charge = float(pricing_cfg.get("default_frame_charge", 0.0))
        self.hourly_rate_threshold = float(pricing_cfg.get("hourly_rate_threshold", HOURLY_RATE_THRESHOLD))

    def update_config(self, config: AppConfig) -> None:
        self.config = config
        self._apply_pricing_config()

    # Rate snapshot --------------------------------------------------------
    def build_rate(self, table: Mapping[str, Any], table_id: Optional[str] = None) -> TableRate:
        """Turn the table catalog record into a normalized rate snapshot."""
        raw_rate = _first_present(table, "pricePerMin", "price_per_min", "pricePerMinute", "price_per_minute")
        if raw_rate is None:
            raw_rate = self.default_price_per_minute
        raw_frame_price = _first_present(table, "pricePerFrame", "price_per_frame")
        raw_frame_charge = _first_present(table, "frameCharge", "frame_charge")

        per_minute, converted = normalize_rate(raw_rate, self.hourly_rate_threshold)
        if converted:
            logger.info(
                "[Pricing] Converted hourly rate to per minute for table %s: %s -> %.4f",
                table_id or table.get("id"),
                raw_rate,
                per_minute,
            )
        return TableRate(
            price_per_minute=per_minute,
            frame_charge=coerce_amount(raw_frame_charge if raw_frame_charge is not None else self.default_frame_charge),
            price_per_frame=coerce_amount(raw_frame_price if raw_frame_price is not None else self.default_price_per_frame),
            raw_price_per_minute=coerce_amount(raw_rate),
            hourly_converted=converted,
        )

    # Charges --------------------------------------------------------------
    def table_charges(
        self,
        rate: TableRate,
        time_option: TimeOption,
        minutes: int,
        frame_count: Optional[int] = None,
    ) -> float:
        if time_option == TimeOption.SELECT_FRAME:
            return coerce_quantity(frame_count) * rate.price_per_frame + rate.frame_charge
        return max(0, int(minutes)) * rate.price_per_minute + rate.frame_charge

    def frame_charges(self, rate: TableRate, time_option: TimeOption, frame_count: Optional[int]) -> float:
        if time_option != TimeOption.SELECT_FRAME:
            return 0.0
        return coerce_quantity(frame_count) * rate.price_per_frame

    def menu_lines(self, items: Iterable[CartItem]) -> List[LineItem]:
        lines: List[LineItem] = []
        for item in items:
            unit_price = coerce_amount(item.unit_price)
            quantity = coerce_quantity(item.quantity)
            lines.append(
                LineItem(
                    menu_item_id=str(item.menu_item_id),
                    name=item.name or str(item.menu_item_id),
                    unit_price=unit_price,
                    quantity=quantity,
                    total=unit_price * quantity,
                )
            )
        return lines

    def compute(
        self,
        rate: TableRate,
        time_option: TimeOption,
        minutes: int,
        items: Iterable[CartItem],
        frame_count: Optional[int] = None,
    ) -> BillDraft:
        lines = self.menu_lines(items)
        return BillDraft(
            table_charges=self.table_charges(rate, time_option, minutes, frame_count),
            menu_charges=sum(line.total for line in lines),
            billable_minutes=max(0, int(minutes)),
            line_items=lines,
        )


def _first_present(source: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None and value != "":
            return value
    return None
