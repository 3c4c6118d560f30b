"""
Inventory stock rules
Stock deltas per transaction type, stock alerts and the valuation summary
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models_inventory import InventoryTransaction, Material

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ["purchase", "usage", "return", "adjustment"]


class StockError(ValueError):
    pass


def calculate_new_stock(
    current_stock: float,
    transaction_type: str,
    quantity: Optional[float] = None,
    new_stock: Optional[float] = None,
) -> float:
    """
    Resulting stock level for a transaction.

    purchase and return add, usage subtracts. An adjustment either sets
    new_stock directly or applies a signed quantity.

    Raises:
        StockError: unknown type, missing quantity, or a negative result
    """
    current_stock = current_stock or 0

    if transaction_type not in TRANSACTION_TYPES:
        raise StockError(f"Transaction type must be one of: {', '.join(TRANSACTION_TYPES)}")

    if transaction_type == "adjustment":
        if new_stock is not None:
            result = new_stock
        elif quantity is not None:
            result = current_stock + quantity
        else:
            raise StockError("Adjustments need either a new stock level or a quantity")
    else:
        if quantity is None or quantity <= 0:
            raise StockError("Quantity must be greater than zero")
        if transaction_type == "usage":
            result = current_stock - quantity
        else:
            result = current_stock + quantity

    if result < 0:
        raise StockError(f"Insufficient stock: {current_stock:g} available")
    return round(result, 4)


def record_transaction(
    db: Session,
    material: Material,
    transaction_type: str,
    quantity: Optional[float] = None,
    new_stock: Optional[float] = None,
    unit_cost: Optional[float] = None,
    job_id: Optional[int] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> InventoryTransaction:
    previous_stock = material.current_stock or 0
    resulting_stock = calculate_new_stock(previous_stock, transaction_type, quantity, new_stock)

    transaction = InventoryTransaction(
        account_id=material.account_id,
        material_id=material.id,
        job_id=job_id,
        transaction_type=transaction_type,
        quantity=round(resulting_stock - previous_stock, 4),
        unit_cost=unit_cost if unit_cost is not None else material.unit_cost,
        previous_stock=previous_stock,
        new_stock=resulting_stock,
        notes=notes,
        created_by=user_id,
    )
    db.add(transaction)

    material.current_stock = resulting_stock
    if transaction_type == "purchase" and unit_cost is not None:
        material.unit_cost = unit_cost
    db.commit()
    db.refresh(transaction)

    logger.info(
        f"📦 {transaction_type} on material {material.id}: {previous_stock:g} → {resulting_stock:g}"
    )
    return transaction


def get_stock_alert(material: Material) -> Optional[dict]:
    """The most severe alert for a material, or None when stock is healthy"""
    stock = material.current_stock or 0
    base = {"materialId": material.id, "name": material.name, "currentStock": stock}

    if stock <= 0:
        return {**base, "type": "out_of_stock", "severity": "critical", "message": f"{material.name} is out of stock"}
    if stock <= (material.min_stock or 0):
        return {
            **base,
            "type": "low_stock",
            "severity": "warning",
            "message": f"{material.name} is below minimum stock ({stock:g} / {material.min_stock:g})",
        }
    if stock <= (material.reorder_point or 0):
        return {
            **base,
            "type": "reorder_needed",
            "severity": "warning",
            "message": f"{material.name} has reached its reorder point ({stock:g})",
        }
    return None


def get_inventory_summary(materials: list[Material]) -> dict:
    total_value = 0.0
    low_stock = 0
    out_of_stock = 0
    categories: dict[str, dict] = {}

    for material in materials:
        stock = material.current_stock or 0
        value = stock * (material.unit_cost or 0)
        total_value += value

        if stock <= 0:
            out_of_stock += 1
        elif stock <= (material.min_stock or 0):
            low_stock += 1

        category = categories.setdefault(material.category or "general", {"count": 0, "value": 0.0})
        category["count"] += 1
        category["value"] = round(category["value"] + value, 2)

    return {
        "totalMaterials": len(materials),
        "totalValue": round(total_value, 2),
        "lowStockCount": low_stock,
        "outOfStockCount": out_of_stock,
        "categories": categories,
    }
