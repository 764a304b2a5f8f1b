from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from revas.models import AccountManagerRole, ClientType


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class _RegisterBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    job_title: Optional[str] = Field(default=None, max_length=128)
    company_name: Optional[str] = Field(default=None, max_length=255)


class ClientRegister(_RegisterBase):
    client_type: ClientType


class AccountManagerRegister(_RegisterBase):
    role: AccountManagerRole
    auto_assign_existing_clients: bool = False


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    account_manager_role: Optional[AccountManagerRole] = None
    client_type: Optional[ClientType] = None
    job_title: Optional[str] = None
    company_name: Optional[str] = None
    active: bool
    created_at: datetime


class IdentityRead(UserRead):
    managed_client_ids: list[int] = Field(default_factory=list)


class RegisterResponse(BaseModel):
    message: str
    user: UserRead
    assigned_client_ids: list[int] = Field(default_factory=list)


class ClientAssignRequest(BaseModel):
    client_ids: list[int] = Field(..., min_length=1)


class ClientAssignResponse(BaseModel):
    message: str
    added_client_ids: list[int]


class ManagedClientPage(BaseModel):
    clients: list[UserRead]
    total: int
    page: int
    limit: int
    total_pages: int
