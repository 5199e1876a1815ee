from fastapi import APIRouter, Depends, status

from portal.core.config import get_settings
from portal.core.security import get_principal
from portal.schemas.users import AuthOut, LoginRequest, RegisterRequest, UserOut
from portal.services import accounts
from portal.services.admin import get_user_or_404
from portal.services.repository import get_repository

router = APIRouter()


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    settings=Depends(get_settings),
    repository=Depends(get_repository),
) -> AuthOut:
    user, token = await accounts.register_user(
        repository,
        settings,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        first_name=payload.first_name,
        last_name=payload.last_name,
        company=payload.company,
    )
    return AuthOut(message="user registered successfully", token=token, user=UserOut(**user))


@router.post("/login", response_model=AuthOut)
async def login(
    payload: LoginRequest,
    settings=Depends(get_settings),
    repository=Depends(get_repository),
) -> AuthOut:
    user, token = await accounts.authenticate_user(
        repository,
        settings,
        email=payload.email,
        password=payload.password,
    )
    return AuthOut(message="login successful", token=token, user=UserOut(**user))


@router.get("/profile", response_model=UserOut)
async def profile(principal=Depends(get_principal), repository=Depends(get_repository)) -> UserOut:
    user = await get_user_or_404(repository, principal.user_id)
    return UserOut(**user)
