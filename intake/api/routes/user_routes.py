"""
User Routes

POST /users/register - Register an applicant (idempotent)
PUT /users/{user_id} - Update profile fields
"""

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from intake.api.deps import get_user_service
from intake.schemas.schemas import UserRegister, UserUpdate, RegisterResponse
from intake.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register_user(data: UserRegister, users: UserService = Depends(get_user_service)):
    """
    Register an applicant.

    Returns 201 with the new record, or 200 with the existing record when
    the email, phone or registration number is already registered.
    """
    user, created = users.register(data.model_dump())
    if not created:
        return JSONResponse(
            status_code=200,
            content=jsonable_encoder({"message": "User already registered", "data": user})
        )
    return RegisterResponse(message="User registered successfully", data=user)


@router.put("/{user_id}")
async def update_user(user_id: str, data: UserUpdate, users: UserService = Depends(get_user_service)):
    """Update profile fields. Only provided fields are changed."""
    user = users.update_profile(user_id, data.model_dump(exclude_unset=True))
    return {"message": "Profile updated successfully", "data": user}
