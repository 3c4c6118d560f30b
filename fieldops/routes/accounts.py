"""
Account API Routes

Account creation for a freshly signed-in user, the current context, and
team membership management.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..auth import (
    ROLE_ADMIN,
    ROLE_OWNER,
    ROLE_TECH,
    AccountContext,
    get_account_context,
    get_current_user,
    require_permission,
    require_staff,
)
from ..database import get_db
from ..models import Account, AccountMembership, BusinessSettings, User
from ..services.business_settings import DEFAULT_AUTOMATION_SETTINGS
from ..shared.validators import validate_email, validate_non_negative

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["Accounts"])

ASSIGNABLE_ROLES = [ROLE_ADMIN, ROLE_TECH]


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    businessName: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Account name is required")
        return v


class MemberCreate(BaseModel):
    email: str
    role: str = ROLE_TECH
    hourlyRate: Optional[float] = None

    @field_validator("email")
    @classmethod
    def validate_member_email(cls, v):
        return validate_email(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in ASSIGNABLE_ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ASSIGNABLE_ROLES)}")
        return v

    @field_validator("hourlyRate")
    @classmethod
    def validate_rate(cls, v):
        return validate_non_negative(v, "Hourly rate")


class MemberUpdate(BaseModel):
    role: Optional[str] = None
    hourlyRate: Optional[float] = None
    isActive: Optional[bool] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v is not None and v not in ASSIGNABLE_ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ASSIGNABLE_ROLES)}")
        return v

    @field_validator("hourlyRate")
    @classmethod
    def validate_rate(cls, v):
        return validate_non_negative(v, "Hourly rate")


class MemberResponse(BaseModel):
    id: int
    userId: int
    email: Optional[str] = None
    fullName: Optional[str] = None
    role: str
    hourlyRate: Optional[float] = None
    isActive: bool


def member_to_response(membership: AccountMembership) -> MemberResponse:
    return MemberResponse(
        id=membership.id,
        userId=membership.user_id,
        email=membership.user.email if membership.user else None,
        fullName=membership.user.full_name if membership.user else None,
        role=membership.role,
        hourlyRate=membership.hourly_rate,
        isActive=bool(membership.is_active),
    )


@router.post("", status_code=201)
async def create_account(
    data: AccountCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create an account with the caller as OWNER. A user belongs to at most one account."""
    existing = (
        db.query(AccountMembership)
        .filter(AccountMembership.user_id == user.id, AccountMembership.is_active.is_(True))
        .first()
    )
    if existing:
        raise HTTPException(status_code=409, detail="User already belongs to an account")

    try:
        account = Account(name=data.name)
        db.add(account)
        db.flush()
        db.add(AccountMembership(account_id=account.id, user_id=user.id, role=ROLE_OWNER))
        db.add(
            BusinessSettings(
                account_id=account.id,
                business_name=(data.businessName or data.name).strip(),
                reply_to_email=user.email,
                ai_automation=dict(DEFAULT_AUTOMATION_SETTINGS),
            )
        )
        db.commit()
        db.refresh(account)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to create account for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create account") from e

    logger.info(f"✅ Account {account.id} created by user {user.id}")
    return {"id": account.public_id, "name": account.name, "role": ROLE_OWNER}


@router.get("/me")
async def get_me(context: AccountContext = Depends(get_account_context)):
    return context.to_dict()


@router.get("/members", response_model=list[MemberResponse])
async def list_members(
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    memberships = (
        db.query(AccountMembership)
        .filter(AccountMembership.account_id == context.account_id)
        .order_by(AccountMembership.id.asc())
        .all()
    )
    return [member_to_response(m) for m in memberships]


@router.post("/members", response_model=MemberResponse, status_code=201)
async def add_member(
    data: MemberCreate,
    context: AccountContext = Depends(require_permission("manage_team")),
    db: Session = Depends(get_db),
):
    """
    Add a signed-up user to the team by email.
    Only OWNER may grant ADMIN.
    """
    if data.role == ROLE_ADMIN and context.role != ROLE_OWNER:
        raise HTTPException(status_code=403, detail="Only the owner can add admins")

    user = db.query(User).filter(User.email == data.email).first()
    if not user:
        raise HTTPException(status_code=404, detail="No user with that email has signed in yet")

    other = (
        db.query(AccountMembership)
        .filter(
            AccountMembership.user_id == user.id,
            AccountMembership.is_active.is_(True),
            AccountMembership.account_id != context.account_id,
        )
        .first()
    )
    if other:
        raise HTTPException(status_code=409, detail="User already belongs to another account")

    membership = (
        db.query(AccountMembership)
        .filter(AccountMembership.user_id == user.id, AccountMembership.account_id == context.account_id)
        .first()
    )
    if membership and membership.is_active:
        raise HTTPException(status_code=409, detail="User is already a member")

    if membership:
        membership.is_active = True
        membership.role = data.role
        membership.hourly_rate = data.hourlyRate
    else:
        membership = AccountMembership(
            account_id=context.account_id, user_id=user.id, role=data.role, hourly_rate=data.hourlyRate
        )
        db.add(membership)
    db.commit()
    db.refresh(membership)

    logger.info(f"👥 User {user.id} added to account {context.account_id} as {data.role}")
    return member_to_response(membership)


@router.put("/members/{membership_id}", response_model=MemberResponse)
async def update_member(
    membership_id: int,
    data: MemberUpdate,
    context: AccountContext = Depends(require_permission("manage_team")),
    db: Session = Depends(get_db),
):
    membership = (
        db.query(AccountMembership)
        .filter(AccountMembership.id == membership_id, AccountMembership.account_id == context.account_id)
        .first()
    )
    if not membership:
        raise HTTPException(status_code=404, detail="Member not found")
    if membership.role == ROLE_OWNER:
        raise HTTPException(status_code=400, detail="The owner membership cannot be changed")
    if data.role == ROLE_ADMIN and context.role != ROLE_OWNER:
        raise HTTPException(status_code=403, detail="Only the owner can add admins")

    if data.role is not None:
        membership.role = data.role
    if data.hourlyRate is not None:
        membership.hourly_rate = data.hourlyRate
    if data.isActive is not None:
        membership.is_active = data.isActive
    db.commit()
    db.refresh(membership)

    logger.info(f"👥 Membership {membership_id} updated by user {context.user_id}")
    return member_to_response(membership)
