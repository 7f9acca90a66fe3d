from fastapi import APIRouter, Depends
from newsblog.dependencies import get_user_service
from newsblog.errors import NotFoundError
from newsblog.schemas import AuthResponse, UserCreate, UserEnvelope, UserLogin
from newsblog.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])

@router.post("/create", status_code=201, response_model=AuthResponse)
async def create_user(data: UserCreate, service: UserService = Depends(get_user_service)):
    result = await service.create_user(data.email, data.password)
    return {"message": "User created successfully", **result}

@router.post("/login", response_model=AuthResponse)
async def login_user(data: UserLogin, service: UserService = Depends(get_user_service)):
    result = await service.login_user(data.email, data.password)
    return {"message": "Login successful", **result}

@router.get("/{user_id}", response_model=UserEnvelope)
async def get_user(user_id: str, service: UserService = Depends(get_user_service)):
    user = await service.get_user_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return {"user": user}
