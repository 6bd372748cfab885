from fastapi import APIRouter, Request, status
from app.platform.response import api_response


router = APIRouter()

@router.get("/health", tags=["health"])
async def health_check(request: Request):
    return api_response(
        data={"status": "ok", "service": f"{request.app.state.settings.APP_NAME} Waitlist"},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
