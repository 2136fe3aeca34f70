import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AlreadyExistsError, InsufficientPermissionsError, InvalidCredentialsError
from app.core.security import hash_password, verify_password
from app.models.user import User, UserRole
from app.schemas.user import UserCreate
from app.services.asset_gateway import PROFILE_PHOTO, AssetGateway

logger = logging.getLogger(__name__)


async def get_user_by_id(db: AsyncSession, user_id: UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user_by_phone(db: AsyncSession, phone: str) -> User | None:
    result = await db.execute(select(User).where(User.phone == phone))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    data: UserCreate,
    assets: AssetGateway,
    profile_photo: bytes | None = None,
) -> User:
    """
    Register a new user with role=user.

    The profile photo, if any, is uploaded before the row is written so a
    failed upload leaves nothing behind.

    Raises:
        AlreadyExistsError: email or phone already registered
        UploadFailedError: the profile photo could not be hosted
    """
    email = data.email.lower()
    if await get_user_by_email(db, email):
        raise AlreadyExistsError("User with that email already exists", field="email")
    if await get_user_by_phone(db, data.phone):
        raise AlreadyExistsError("User with that phone already exists", field="phone")

    photo_url = None
    if profile_photo:
        asset = await assets.upload(profile_photo, PROFILE_PHOTO)
        photo_url = asset.url

    user = User(
        username=data.username,
        email=email,
        phone=data.phone,
        password_hash=hash_password(data.password),
        role=UserRole.USER,
        profile_photo_url=photo_url,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration
        await db.rollback()
        if photo_url:
            result = await assets.delete(photo_url)
            result.acknowledge(f"rejected registration {email}")
        raise AlreadyExistsError("User with that email or phone already exists")

    await db.refresh(user)
    logger.info(f"Registered user {user.id}")
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    """Same error for unknown email and wrong password."""
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()
    return user


def authorize(user: User, required_role: str) -> None:
    if user.role != required_role:
        raise InsufficientPermissionsError(user.role, required_role)
