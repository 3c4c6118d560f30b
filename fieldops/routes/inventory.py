"""
Inventory API Routes

Materials, stock transactions, low-stock alerts and the valuation summary.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import AccountContext, require_staff, require_tech
from ..database import get_db
from ..models_inventory import InventoryTransaction, Material
from ..models_job import Job
from ..services.inventory_service import (
    StockError,
    get_inventory_summary,
    get_stock_alert,
    record_transaction,
)
from ..shared.validators import validate_non_negative

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["Inventory"])


class MaterialCreate(BaseModel):
    name: str
    sku: Optional[str] = None
    category: str = "general"
    unit: str = "each"
    currentStock: float = 0
    minStock: float = 0
    reorderPoint: float = 0
    unitCost: float = 0
    supplier: Optional[str] = None
    location: Optional[str] = None

    @field_validator("currentStock", "minStock", "reorderPoint", "unitCost")
    @classmethod
    def validate_amounts(cls, v, info):
        return validate_non_negative(v, info.field_name)


class MaterialUpdate(BaseModel):
    name: Optional[str] = None
    sku: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    minStock: Optional[float] = None
    reorderPoint: Optional[float] = None
    unitCost: Optional[float] = None
    supplier: Optional[str] = None
    location: Optional[str] = None

    @field_validator("minStock", "reorderPoint", "unitCost")
    @classmethod
    def validate_amounts(cls, v, info):
        return validate_non_negative(v, info.field_name)


class TransactionCreate(BaseModel):
    transactionType: str
    quantity: Optional[float] = None
    newStock: Optional[float] = None
    unitCost: Optional[float] = None
    jobId: Optional[int] = None
    notes: Optional[str] = None


MATERIAL_FIELDS = {
    "name": "name",
    "sku": "sku",
    "category": "category",
    "unit": "unit",
    "currentStock": "current_stock",
    "minStock": "min_stock",
    "reorderPoint": "reorder_point",
    "unitCost": "unit_cost",
    "supplier": "supplier",
    "location": "location",
}


def material_to_dict(material: Material) -> dict:
    return {
        "id": material.id,
        "name": material.name,
        "sku": material.sku,
        "category": material.category,
        "unit": material.unit,
        "currentStock": material.current_stock or 0,
        "minStock": material.min_stock or 0,
        "reorderPoint": material.reorder_point or 0,
        "unitCost": material.unit_cost or 0,
        "stockValue": round((material.current_stock or 0) * (material.unit_cost or 0), 2),
        "supplier": material.supplier,
        "location": material.location,
        "alert": get_stock_alert(material),
    }


def transaction_to_dict(transaction: InventoryTransaction) -> dict:
    return {
        "id": transaction.id,
        "materialId": transaction.material_id,
        "jobId": transaction.job_id,
        "transactionType": transaction.transaction_type,
        "quantity": transaction.quantity,
        "unitCost": transaction.unit_cost,
        "previousStock": transaction.previous_stock,
        "newStock": transaction.new_stock,
        "notes": transaction.notes,
        "createdAt": transaction.created_at.isoformat() if transaction.created_at else None,
    }


def _active_materials(db: Session, account_id: int):
    return db.query(Material).filter(Material.account_id == account_id, Material.is_active.is_(True))


def _get_material(db: Session, material_id: int, account_id: int) -> Material:
    material = _active_materials(db, account_id).filter(Material.id == material_id).first()
    if not material:
        raise HTTPException(status_code=404, detail="Material not found")
    return material


@router.get("/materials")
async def list_materials(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    query = _active_materials(db, context.account_id)
    if category:
        query = query.filter(Material.category == category)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(Material.name.ilike(term) | Material.sku.ilike(term))
    return [material_to_dict(m) for m in query.order_by(Material.name.asc()).all()]


@router.get("/summary")
async def inventory_summary(
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return get_inventory_summary(_active_materials(db, context.account_id).all())


@router.get("/alerts")
async def stock_alerts(
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    """out_of_stock (critical), low_stock and reorder_needed (warning)"""
    alerts = []
    for material in _active_materials(db, context.account_id).order_by(Material.name.asc()).all():
        alert = get_stock_alert(material)
        if alert:
            alerts.append(alert)
    alerts.sort(key=lambda a: a["severity"] != "critical")
    return {"alerts": alerts, "count": len(alerts)}


@router.post("/materials", status_code=201)
async def create_material(
    data: MaterialCreate,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    if not data.name.strip():
        raise HTTPException(status_code=400, detail="Material name is required")

    values = {column: getattr(data, field) for field, column in MATERIAL_FIELDS.items()}
    values["name"] = data.name.strip()
    material = Material(account_id=context.account_id, **values)
    db.add(material)
    db.commit()
    db.refresh(material)
    logger.info(f"✅ Created material {material.id} ({material.name}) for account {context.account_id}")
    return material_to_dict(material)


@router.get("/materials/{material_id}")
async def get_material(
    material_id: int,
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    return material_to_dict(_get_material(db, material_id, context.account_id))


@router.put("/materials/{material_id}")
async def update_material(
    material_id: int,
    data: MaterialUpdate,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    material = _get_material(db, material_id, context.account_id)
    for field, column in MATERIAL_FIELDS.items():
        value = getattr(data, field, None)
        if value is not None:
            setattr(material, column, value)
    db.commit()
    db.refresh(material)
    return material_to_dict(material)


@router.delete("/materials/{material_id}")
async def delete_material(
    material_id: int,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    # Soft delete keeps the transaction ledger intact
    material = _get_material(db, material_id, context.account_id)
    material.is_active = False
    db.commit()
    return {"message": "Material deleted"}


@router.get("/materials/{material_id}/transactions")
async def list_transactions(
    material_id: int,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    material = _get_material(db, material_id, context.account_id)
    return [transaction_to_dict(t) for t in reversed(material.transactions)]


@router.post("/materials/{material_id}/transactions", status_code=201)
async def create_transaction(
    material_id: int,
    data: TransactionCreate,
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    """Purchase, usage, return or adjustment. Results below zero are rejected."""
    material = _get_material(db, material_id, context.account_id)

    if data.jobId is not None:
        job = db.query(Job.id).filter(Job.id == data.jobId, Job.account_id == context.account_id).first()
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")

    try:
        transaction = record_transaction(
            db,
            material,
            data.transactionType,
            quantity=data.quantity,
            new_stock=data.newStock,
            unit_cost=data.unitCost,
            job_id=data.jobId,
            notes=data.notes,
            user_id=context.user_id,
        )
    except StockError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    db.refresh(material)
    return {"transaction": transaction_to_dict(transaction), "material": material_to_dict(material)}
