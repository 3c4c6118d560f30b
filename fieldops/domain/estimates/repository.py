"""Estimate repository - Database operations for estimates"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import BusinessSettings, Client
from ...models_estimate import Estimate


class EstimateRepository:
    """Repository for estimate database operations"""

    @staticmethod
    def list_estimates(
        db: Session, account_id: int, status: Optional[str] = None, client_id: Optional[int] = None
    ) -> list[Estimate]:
        query = db.query(Estimate).options(joinedload(Estimate.client)).filter(Estimate.account_id == account_id)
        if status:
            query = query.filter(Estimate.status == status)
        if client_id:
            query = query.filter(Estimate.client_id == client_id)
        return query.order_by(Estimate.created_at.desc(), Estimate.id.desc()).all()

    @staticmethod
    def get_estimate(db: Session, estimate_id: int, account_id: int) -> Optional[Estimate]:
        return db.query(Estimate).filter(Estimate.id == estimate_id, Estimate.account_id == account_id).first()

    @staticmethod
    def get_by_public_id(db: Session, public_id: str) -> Optional[Estimate]:
        return db.query(Estimate).filter(Estimate.public_id == public_id).first()

    @staticmethod
    def get_client(db: Session, client_id: int, account_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id, Client.account_id == account_id).first()

    @staticmethod
    def get_settings(db: Session, account_id: int) -> Optional[BusinessSettings]:
        return db.query(BusinessSettings).filter(BusinessSettings.account_id == account_id).first()

    @staticmethod
    def next_estimate_number(db: Session, account_id: int) -> str:
        """EST-0001, EST-0002, ... per account"""
        numbers = db.query(Estimate.estimate_number).filter(Estimate.account_id == account_id).all()
        highest = 0
        for (number,) in numbers:
            try:
                highest = max(highest, int(str(number).rsplit("-", 1)[-1]))
            except ValueError:
                continue
        return f"EST-{highest + 1:04d}"

    @staticmethod
    def create_estimate(db: Session, **estimate_data) -> Estimate:
        estimate = Estimate(**estimate_data)
        db.add(estimate)
        db.commit()
        db.refresh(estimate)
        return estimate

    @staticmethod
    def count_by_status(db: Session, account_id: int) -> dict[str, int]:
        rows = (
            db.query(Estimate.status, func.count(Estimate.id))
            .filter(Estimate.account_id == account_id)
            .group_by(Estimate.status)
            .all()
        )
        return {status: count for status, count in rows}
