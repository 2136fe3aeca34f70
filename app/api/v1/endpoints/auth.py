import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError as SchemaError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, RequiredFieldError, TokenInvalidError, ValidationError
from app.core.security import create_access_token, decode_access_token
from app.database import get_db
from app.models.user import User
from app.schemas.common import ApiResponse
from app.schemas.user import AuthResult, UserCreate, UserLogin, UserResponse
from app.services import user_service
from app.services.asset_gateway import AssetGateway, get_asset_gateway, read_image_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["auth"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def describe_schema_error(exc: SchemaError) -> str:
    return ", ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'body'}: {error['msg']}"
        for error in exc.errors()
    )


async def get_current_user(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Resolve the bearer token to a user. Role comes from the database, not the token."""
    if not token:
        raise AuthenticationError()

    payload = decode_access_token(token)

    try:
        user_id = UUID(payload.sub)
    except ValueError:
        raise TokenInvalidError()

    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise TokenInvalidError()

    return user


def auth_result(user: User) -> AuthResult:
    return AuthResult(
        access_token=create_access_token(str(user.id)),
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/register",
    response_model=ApiResponse[AuthResult],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    db: Annotated[AsyncSession, Depends(get_db)],
    assets: Annotated[AssetGateway, Depends(get_asset_gateway)],
    username: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    phone: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    profile_photo: Annotated[UploadFile | None, File(alias="profilePhoto")] = None,
) -> ApiResponse[AuthResult]:
    """
    Register a new user (multipart form).

    An optional `profilePhoto` is cropped to a 200x200 face-centred square.
    """
    if not all([username, email, phone, password]):
        raise RequiredFieldError("Please provide all required fields")

    try:
        user_data = UserCreate(username=username, email=email, phone=phone, password=password)
    except SchemaError as e:
        raise ValidationError(describe_schema_error(e))

    photo = None
    if profile_photo is not None and profile_photo.filename:
        photo = await read_image_upload(profile_photo)

    user = await user_service.create_user(db, user_data, assets, photo)
    return ApiResponse(message="User registered successfully", data=auth_result(user))


@router.post("/login", response_model=ApiResponse[AuthResult])
async def login(
    credentials: UserLogin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[AuthResult]:
    user = await user_service.authenticate_user(db, credentials.email, credentials.password)
    logger.info(f"User {user.id} logged in")
    return ApiResponse(data=auth_result(user))


@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> ApiResponse[UserResponse]:
    return ApiResponse(data=UserResponse.model_validate(current_user))
