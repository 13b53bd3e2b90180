from fastapi import APIRouter, Depends

from therapy_backend.auth.dependencies import get_current_user
from therapy_backend.models.user import User

router = APIRouter(tags=['auth'])


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {"id": current_user.id, "email": current_user.email, "name": current_user.name, "role": current_user.role}
