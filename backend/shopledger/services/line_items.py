# Overview: Tagged line-item variants for sale and purchase drafts, parsed before any ledger effect.

"""
Line items

Drafts arrive as loose JSON. They are resolved into one of these variants
before totals, stock deltas or old-battery effects are computed:

    SaleItem         = RegularItem | ItemWithScrapConsumption
    PurchaseLineInput = ExistingProductLine | NewProductLine

to_document() gives back the camelCase shape stored inside the parent
sale/purchase document.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Union

from ..errors import InvalidInput
from ..validation import (
    coerce_int,
    coerce_measure,
    coerce_money,
    coerce_text,
    require_mapping,
    to_number,
)


ZERO = Decimal("0.00")


@dataclass(frozen=True)
class ScrapConsumption:
    """Old battery taken in against a sale line; deducted from the bill."""
    name: str
    weight: float
    rate_per_kg: float
    deduction_amount: Decimal
    quantity: int = 1

    def signature(self) -> tuple:
        return (self.name.strip().lower(), round(self.weight, 3), self.quantity)

    def to_document(self) -> dict:
        return {
            "name": self.name,
            "weight": self.weight,
            "ratePerKg": self.rate_per_kg,
            "deductionAmount": to_number(self.deduction_amount),
            "quantity": self.quantity,
        }


@dataclass
class RegularItem:
    id: str
    product_id: str
    quantity: int
    sale_price: Decimal
    discount: Decimal = ZERO
    product_name: str | None = None

    @property
    def subtotal(self) -> Decimal:
        return self.sale_price * self.quantity

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.discount

    @property
    def scrap(self) -> ScrapConsumption | None:
        return None

    def to_document(self) -> dict:
        doc = {
            "id": self.id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "salePrice": to_number(self.sale_price),
            "discount": to_number(self.discount),
            "total": to_number(self.total),
            "includeOldBattery": False,
        }
        if self.product_name:
            doc["productName"] = self.product_name
        return doc


@dataclass
class ItemWithScrapConsumption(RegularItem):
    old_battery: ScrapConsumption | None = None
    # Consumption fact id once the scrap has been taken out of stock
    old_battery_id: str | None = None

    @property
    def scrap(self) -> ScrapConsumption | None:
        return self.old_battery

    def to_document(self) -> dict:
        doc = super().to_document()
        doc["includeOldBattery"] = True
        doc["oldBatteryData"] = self.old_battery.to_document()
        doc["oldBatteryId"] = self.old_battery_id
        return doc


SaleItem = Union[RegularItem, ItemWithScrapConsumption]


@dataclass
class ExistingProductLine:
    id: str
    product_id: str
    quantity: int
    trade_price: Decimal

    @property
    def total(self) -> Decimal:
        return self.trade_price * self.quantity

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "tradePrice": to_number(self.trade_price),
            "total": to_number(self.total),
        }


@dataclass
class NewProductLine:
    """A purchase line that creates its product before stock is received."""
    id: str
    quantity: int
    trade_price: Decimal
    product: dict = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return self.trade_price * self.quantity

    def resolve(self, product_id: str) -> ExistingProductLine:
        return ExistingProductLine(
            id=self.id,
            product_id=product_id,
            quantity=self.quantity,
            trade_price=self.trade_price,
        )


PurchaseLineInput = Union[ExistingProductLine, NewProductLine]


def _line_id(raw: dict) -> str:
    value = raw.get("id")
    return str(value) if value else uuid.uuid4().hex


def parse_scrap(raw, index: int) -> ScrapConsumption:
    data = require_mapping(raw, f"items[{index}].oldBatteryData")
    prefix = f"items[{index}].oldBatteryData"
    name = coerce_text(data.get("name"), f"{prefix}.name")
    weight = coerce_measure(data.get("weight"), f"{prefix}.weight")
    rate = coerce_measure(data.get("ratePerKg"), f"{prefix}.ratePerKg", default=0.0)
    if data.get("deductionAmount") is None:
        deduction = coerce_money(Decimal(str(weight)) * Decimal(str(rate)), f"{prefix}.deductionAmount")
    else:
        deduction = coerce_money(data.get("deductionAmount"), f"{prefix}.deductionAmount")
    quantity = coerce_int(data.get("quantity", 1), f"{prefix}.quantity", minimum=1)
    return ScrapConsumption(
        name=name,
        weight=weight,
        rate_per_kg=rate,
        deduction_amount=deduction,
        quantity=quantity,
    )


def parse_sale_item(raw, index: int) -> SaleItem:
    data = require_mapping(raw, f"items[{index}]")
    product_id = coerce_text(data.get("productId"), f"items[{index}].productId")
    quantity = coerce_int(data.get("quantity"), f"items[{index}].quantity", minimum=1)
    sale_price = coerce_money(data.get("salePrice"), f"items[{index}].salePrice")
    discount = coerce_money(data.get("discount"), f"items[{index}].discount", default=ZERO)
    if discount > sale_price * quantity:
        raise InvalidInput(f"items[{index}].discount cannot exceed the line subtotal")

    common = dict(
        id=_line_id(data),
        product_id=product_id,
        quantity=quantity,
        sale_price=sale_price,
        discount=discount,
        product_name=coerce_text(data.get("productName"), f"items[{index}].productName", required=False),
    )

    scrap_raw = data.get("oldBatteryData")
    if scrap_raw and data.get("includeOldBattery", True):
        return ItemWithScrapConsumption(
            **common,
            old_battery=parse_scrap(scrap_raw, index),
            old_battery_id=data.get("oldBatteryId") or None,
        )
    return RegularItem(**common)


def parse_sale_items(raw_items) -> list[SaleItem]:
    if not isinstance(raw_items, list):
        raise InvalidInput("items must be a list")
    if not raw_items:
        raise InvalidInput("A sale needs at least one item")
    return [parse_sale_item(raw, i) for i, raw in enumerate(raw_items)]


def parse_purchase_line(raw, index: int) -> PurchaseLineInput:
    data = require_mapping(raw, f"items[{index}]")
    quantity = coerce_int(data.get("quantity"), f"items[{index}].quantity", minimum=1)
    trade_price = coerce_money(data.get("tradePrice"), f"items[{index}].tradePrice")

    new_product = data.get("newProduct")
    if new_product is not None or data.get("productId") == "new_product":
        fields = require_mapping(new_product or {}, f"items[{index}].newProduct")
        product = {
            "code": coerce_text(fields.get("code"), f"items[{index}].newProduct.code"),
            "name": coerce_text(fields.get("name"), f"items[{index}].newProduct.name"),
            "category": coerce_text(fields.get("category"), "category", required=False) or "",
            "unit": coerce_text(fields.get("unit"), "unit", required=False) or "pcs",
            "tradePrice": to_number(coerce_money(fields.get("tradePrice"), "tradePrice", default=trade_price)),
            "salePrice": to_number(coerce_money(fields.get("salePrice"), "salePrice", default=ZERO)),
            "minStockLevel": coerce_int(fields.get("minStockLevel", 10), "minStockLevel", minimum=0),
            "isBattery": bool(fields.get("isBattery", False)),
        }
        if product["isBattery"]:
            product["packing"] = coerce_text(fields.get("packing"), "packing", required=False) or ""
            product["retailer"] = coerce_text(fields.get("retailer"), "retailer", required=False) or ""
        return NewProductLine(
            id=_line_id(data),
            quantity=quantity,
            trade_price=trade_price,
            product=product,
        )

    return ExistingProductLine(
        id=_line_id(data),
        product_id=coerce_text(data.get("productId"), f"items[{index}].productId"),
        quantity=quantity,
        trade_price=trade_price,
    )


def parse_purchase_lines(raw_items) -> list[PurchaseLineInput]:
    if not isinstance(raw_items, list):
        raise InvalidInput("items must be a list")
    if not raw_items:
        raise InvalidInput("A purchase needs at least one item")
    return [parse_purchase_line(raw, i) for i, raw in enumerate(raw_items)]


def quantities(lines) -> dict[str, int]:
    """productId -> total quantity over resolved lines."""
    totals: dict[str, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals
