import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session

from .config import AUTH_JWT_ALGORITHM, AUTH_JWT_AUDIENCE, AUTH_JWT_SECRET, DEMO_ACCOUNT_ID, DEMO_MODE
from .database import get_db
from .models import Account, AccountMembership, Client, User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ACCESS_TOKEN_COOKIE = "access_token"

ROLE_OWNER = "OWNER"
ROLE_ADMIN = "ADMIN"
ROLE_TECH = "TECH"
ROLE_CUSTOMER = "CUSTOMER"
VALID_ROLES = [ROLE_OWNER, ROLE_ADMIN, ROLE_TECH, ROLE_CUSTOMER]

ROLE_PERMISSIONS = {
    ROLE_OWNER: [
        "manage_users",
        "manage_account",
        "manage_business",
        "view_reports",
        "manage_team",
        "manage_inventory",
        "manage_automations",
        "view_financial",
        "manage_leads",
        "export_data",
    ],
    ROLE_ADMIN: [
        "manage_business",
        "view_reports",
        "manage_team",
        "manage_inventory",
        "manage_automations",
        "view_financial",
        "manage_leads",
    ],
    ROLE_TECH: ["manage_business"],  # Limited to their assigned jobs
    ROLE_CUSTOMER: [],
}


def can_manage_admin(role: str) -> bool:
    return role in (ROLE_OWNER, ROLE_ADMIN)


class AccountContext:
    """Resolved tenant, user and role for the current request"""

    def __init__(
        self,
        account: Account,
        user: User,
        role: str,
        client_id: Optional[int] = None,
    ):
        self.account = account
        self.user = user
        self.role = role
        self.client_id = client_id  # Set for CUSTOMER contexts
        self.permissions = list(ROLE_PERMISSIONS.get(role, []))

    @property
    def account_id(self) -> int:
        return self.account.id

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_staff(self) -> bool:
        return can_manage_admin(self.role)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def to_dict(self) -> dict:
        return {
            "accountId": self.account.public_id,
            "accountName": self.account.name,
            "userId": self.user.id,
            "email": self.user.email,
            "role": self.role,
            "permissions": self.permissions,
            "clientId": self.client_id,
        }


def decode_access_token(token: str) -> dict:
    """Verify an HS256 access token issued by the hosted auth provider"""
    options = {"verify_aud": bool(AUTH_JWT_AUDIENCE)}
    try:
        return jose_jwt.decode(
            token,
            AUTH_JWT_SECRET,
            algorithms=[AUTH_JWT_ALGORITHM],
            audience=AUTH_JWT_AUDIENCE,
            options=options,
        )
    except ExpiredSignatureError as e:
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        ) from e
    except JWTError as e:
        logger.warning(f"⚠️ Token verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid authentication token") from e


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get (or provision) the current user from the bearer token or session cookie"""
    token = credentials.credentials if credentials else request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    payload = decode_access_token(token)
    auth_uid = payload.get("sub")
    if not auth_uid:
        logger.error(f"❌ Token missing sub claim. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = db.query(User).filter(User.auth_uid == auth_uid).first()
    if user:
        return user

    email = payload.get("email")
    if email and db.query(User).filter(User.email == email).first():
        logger.warning(f"⚠️ Email {email} already linked to a different auth uid")
        raise HTTPException(status_code=409, detail="Email already registered to another login")

    user = User(
        auth_uid=auth_uid,
        email=email,
        full_name=(payload.get("user_metadata") or {}).get("full_name") or payload.get("name"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"✅ Provisioned user {user.id} for auth uid {auth_uid}")
    return user


def _customer_client(db: Session, user: User, account_id: Optional[int] = None) -> Optional[Client]:
    query = db.query(Client).filter(Client.user_id == user.id)
    if account_id is not None:
        query = query.filter(Client.account_id == account_id)
    return query.order_by(Client.id.asc()).first()


def resolve_account_context(db: Session, user: User, portal: bool = False) -> AccountContext:
    """
    Resolve which account and role the user acts under.

    1. First active membership wins.
    2. No membership but linked to a client record -> CUSTOMER of that client's account.
    3. Demo mode -> demo account as OWNER, or as its first client on portal routes.
    """
    membership = (
        db.query(AccountMembership)
        .filter(AccountMembership.user_id == user.id, AccountMembership.is_active.is_(True))
        .order_by(AccountMembership.id.asc())
        .first()
    )
    if membership:
        client_id = None
        if membership.role == ROLE_CUSTOMER:
            client = _customer_client(db, user, membership.account_id)
            client_id = client.id if client else None
        return AccountContext(membership.account, user, membership.role, client_id)

    client = _customer_client(db, user)
    if client:
        account = db.query(Account).filter(Account.id == client.account_id).first()
        return AccountContext(account, user, ROLE_CUSTOMER, client.id)

    if DEMO_MODE and DEMO_ACCOUNT_ID:
        account = db.query(Account).filter(Account.id == DEMO_ACCOUNT_ID).first()
        if account and portal:
            demo_client = (
                db.query(Client).filter(Client.account_id == account.id).order_by(Client.id.asc()).first()
            )
            if not demo_client:
                raise HTTPException(status_code=403, detail="Demo account has no clients")
            logger.info(f"🔍 Demo mode: user {user.id} viewing portal as demo client {demo_client.id}")
            return AccountContext(account, user, ROLE_CUSTOMER, demo_client.id)
        if account:
            logger.info(f"🔍 Demo mode: user {user.id} resolved to demo account {account.id} as {ROLE_OWNER}")
            return AccountContext(account, user, ROLE_OWNER)

    raise HTTPException(status_code=403, detail="No account membership found")


async def get_account_context(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AccountContext:
    return resolve_account_context(db, user)


async def get_portal_context(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AccountContext:
    """Customer portal routes only accept CUSTOMER contexts"""
    context = resolve_account_context(db, user, portal=True)
    if context.role != ROLE_CUSTOMER:
        raise HTTPException(status_code=403, detail="Customer access required")
    if context.client_id is None:
        raise HTTPException(status_code=403, detail="No customer record linked to this login")
    return context


def require_roles(*roles: str):
    """
    Create a dependency that only lets the given roles through.

    Example usage:
        require_staff = require_roles(ROLE_OWNER, ROLE_ADMIN)

        @router.get("/reports")
        async def reports(context: AccountContext = Depends(require_staff)):
            ...
    """

    async def role_checker(context: AccountContext = Depends(get_account_context)) -> AccountContext:
        if context.role not in roles:
            logger.warning(f"🚫 User {context.user_id} with role {context.role} denied (needs {roles})")
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return context

    return role_checker


def require_permission(permission: str):
    async def permission_checker(
        context: AccountContext = Depends(get_account_context),
    ) -> AccountContext:
        if not context.has_permission(permission):
            raise HTTPException(status_code=403, detail=f"Missing permission: {permission}")
        return context

    return permission_checker


require_staff = require_roles(ROLE_OWNER, ROLE_ADMIN)
require_tech = require_roles(ROLE_OWNER, ROLE_ADMIN, ROLE_TECH)
