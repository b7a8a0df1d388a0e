from fastapi import APIRouter, Depends

from auth import get_current_user
from responses import ApiResponse

router = APIRouter()


@router.get("", response_model=ApiResponse)
def healthchecker(current_user: dict = Depends(get_current_user)):
    return ApiResponse(statusCode=200, data={"status": "ok"}, message="Everything is O.K.")
