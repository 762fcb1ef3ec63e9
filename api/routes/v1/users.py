"""
api/routes/v1/users.py -- Profile, password and picture endpoints.

Routes:
  GET    /api/v1/users                    -- list accounts, newest first
  GET    /api/v1/users/profile            -- current account
  PUT    /api/v1/users/profile            -- partial profile edit (multipart, optional picture)
  POST   /api/v1/users/profile/picture    -- attach/replace picture (multipart)
  DELETE /api/v1/users/profile/picture    -- detach picture
  POST   /api/v1/users/change-password    -- set a new password
  GET    /api/v1/users/{user_id}          -- one account by id

Every route requires authentication. Routes that accept a file are under the
upload rate limit.

Route registration order: /users/profile and /users/change-password are
defined before /users/{user_id} so "profile" is never taken as an id.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from accounts.errors import ValidationError
from accounts.models import ProfileUpdate, SecretChange
from accounts.service import AccountService
from accounts.validation import parse_age
from api.limiter import limiter, upload_limit
from api.models import AccountMessageResponse, AccountResponse, ChangePasswordRequest, MessageResponse
from api.routes.v1.auth import read_upload
from auth.dependencies import get_account_service, get_current_account_id

router = APIRouter()


@router.get("/users", response_model=list[AccountResponse])
def list_users(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
) -> list[AccountResponse]:
    return [AccountResponse.from_account(a) for a in service.list_accounts(limit=limit, offset=offset)]


@router.get("/users/profile", response_model=AccountResponse)
def get_profile(
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return AccountResponse.from_account(service.get_account(account_id))


@router.put("/users/profile", response_model=AccountMessageResponse)
@limiter.limit(upload_limit)
def update_profile(
    request: Request,
    name: Optional[str] = Form(None),
    age: Optional[str] = Form(None),
    gender: Optional[str] = Form(None),
    picture: Optional[UploadFile] = File(None),
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
) -> AccountMessageResponse:
    """Edit any subset of name/age/gender and optionally replace the picture.

    Omitted or blank fields are left unchanged.
    """
    data = ProfileUpdate(name=name or None, age=parse_age(age), gender=gender or None)
    account = service.update_profile(account_id, data, read_upload(picture, service.max_upload_bytes))
    return AccountMessageResponse(message="Profile updated successfully.", user=AccountResponse.from_account(account))


@router.post("/users/profile/picture", response_model=AccountMessageResponse)
@limiter.limit(upload_limit)
def upload_picture(
    request: Request,
    picture: UploadFile = File(...),
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
) -> AccountMessageResponse:
    upload = read_upload(picture, service.max_upload_bytes)
    if upload is None:
        raise ValidationError("Picture file is required.")
    account = service.attach_picture(account_id, upload)
    return AccountMessageResponse(message="Profile picture updated.", user=AccountResponse.from_account(account))


@router.delete("/users/profile/picture", response_model=AccountMessageResponse)
def delete_picture(
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
) -> AccountMessageResponse:
    account = service.detach_picture(account_id)
    return AccountMessageResponse(
        message="Profile picture deleted successfully.", user=AccountResponse.from_account(account)
    )


@router.post("/users/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Change the password. Accounts that never had one set it without the current password."""
    service.change_secret(
        account_id,
        SecretChange(new_password=body.new_password, current_password=body.current_password),
    )
    return MessageResponse(message="Password updated successfully.")


@router.get("/users/{user_id}", response_model=AccountResponse)
def get_user(
    user_id: str,
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return AccountResponse.from_account(service.get_account(user_id))
