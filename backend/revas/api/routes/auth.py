from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from revas import models
from revas.api.deps import get_current_user
from revas.core.actors import AccountManagerActor, actor_from_user
from revas.core.errors import AuthenticationError, AuthorizationError, ValidationError
from revas.core.security import create_access_token_for_user, hash_password, verify_password
from revas.database import get_db
from revas.schemas.users import (
    AccountManagerRegister,
    ClientRegister,
    IdentityRead,
    RegisterResponse,
    Token,
    UserRead,
)
from revas.services.account_managers import auto_assign_existing_clients
from revas.services.audit import audit_event, audit_request_context

router = APIRouter(prefix="/auth", tags=["auth"])


def _ensure_email_free(db: Session, email: str) -> str:
    normalized = email.strip().lower()
    if db.query(models.User).filter(models.User.email == normalized).first():
        raise ValidationError("Email already registered")
    return normalized


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register_client(
    request: Request,
    payload: ClientRegister,
    db: Session = Depends(get_db),  # noqa: B008
):
    user = models.User(
        email=_ensure_email_free(db, payload.email),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        hashed_password=hash_password(payload.password),
        client_type=payload.client_type,
        job_title=payload.job_title,
        company_name=payload.company_name,
        active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    audit_event(
        "auth.register",
        user.id,
        {"email": user.email, "client_type": user.client_type.value},
        db=db,
        **audit_request_context(request),
    )
    return RegisterResponse(message="User registered", user=UserRead.model_validate(user))


@router.post(
    "/account-managers/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_account_manager(
    request: Request,
    payload: AccountManagerRegister,
    db: Session = Depends(get_db),  # noqa: B008
):
    user = models.User(
        email=_ensure_email_free(db, payload.email),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        hashed_password=hash_password(payload.password),
        account_manager_role=payload.role,
        job_title=payload.job_title,
        company_name=payload.company_name,
        active=True,
    )
    db.add(user)
    db.flush()

    assigned: list[int] = []
    if payload.auto_assign_existing_clients:
        assigned = auto_assign_existing_clients(db, user)

    db.commit()
    db.refresh(user)
    audit_event(
        "auth.register_account_manager",
        user.id,
        {"email": user.email, "role": user.account_manager_role.value, "assigned": assigned},
        db=db,
        **audit_request_context(request),
    )
    return RegisterResponse(
        message="Account manager registered",
        user=UserRead.model_validate(user),
        assigned_client_ids=assigned,
    )


@router.post("/token", response_model=Token)
def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
):
    email = form_data.username.strip().lower()
    user = db.query(models.User).filter(models.User.email == email).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        audit_event("auth.login_failed", None, {"email": email}, db=db, **audit_request_context(request))
        raise AuthenticationError("Incorrect email or password")
    if not user.active:
        audit_event(
            "auth.login_inactive", user.id, {"email": email}, db=db, **audit_request_context(request)
        )
        raise AuthorizationError("Inactive user")

    access_token = create_access_token_for_user(user)
    audit_event("auth.login_success", user.id, {"email": email}, db=db, **audit_request_context(request))
    return Token(access_token=access_token)


@router.get("/me", response_model=IdentityRead)
def read_current_user(
    db: Session = Depends(get_db),  # noqa: B008
    current_user: models.User = Depends(get_current_user),  # noqa: B008
):
    actor = actor_from_user(db, current_user)
    managed = sorted(actor.managed_client_ids) if isinstance(actor, AccountManagerActor) else []
    identity = IdentityRead.model_validate(current_user)
    identity.managed_client_ids = managed
    return identity
