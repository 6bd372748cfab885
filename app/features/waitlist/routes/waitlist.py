import secrets
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.schemas.waitlist import (
    WaitlistCountOut,
    WaitListResponse,
    WaitlistStatsResponse,
)
from app.features.waitlist.services.email_templates import env
from app.features.waitlist.services.repository import WaitlistRepository
from app.features.waitlist.services.waitlist import RequestContext, TokenOutcome, WaitlistService
from app.platform.db.session import get_db
from app.platform.exceptions import Unauthorized, WaitlistError
from app.platform.response import api_body, api_response
from app.platform.services.rate_limiter import get_client_identifier
from app.platform.utils.debug_bypass import is_debug_bypass

router = APIRouter(prefix="/api/waitlist", tags=["Waitlist"])
email_router = APIRouter(prefix="/api/email", tags=["Email"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def get_waitlist_service(request: Request, db: AsyncSession = Depends(get_db)) -> WaitlistService:
    return WaitlistService(
        WaitlistRepository(db),
        request.app.state.email_dispatcher,
        request.app.state.settings,
    )


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


def _render_page(
    request: Request,
    title: str,
    message: str,
    *,
    success: bool,
    status_code: int = status.HTTP_200_OK,
    waitlist_position: Optional[int] = None,
) -> HTMLResponse:
    settings = request.app.state.settings
    html = env.get_template("action_page.html").render(
        app_name=settings.APP_NAME,
        title=title,
        message=message,
        success=success,
        waitlist_position=waitlist_position,
        home_url=settings.PUBLIC_URL,
    )
    return HTMLResponse(html, status_code=status_code)


def _token_response(outcome: TokenOutcome) -> JSONResponse:
    data = {"email": outcome.email}
    if outcome.waitlist_position is not None:
        data["waitlist_position"] = outcome.waitlist_position
    return api_response(data=data, message=outcome.message)


# ── Signup ─────────────────────────────


@router.post("", responses={201: {"model": WaitListResponse}})
async def join_waitlist(request: Request, service: WaitlistService = Depends(get_waitlist_service)):
    payload = await _read_json(request)
    if payload is None:
        return api_response(
            message="Request body must be valid JSON",
            error="Invalid submission data",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    ip_address = get_client_identifier(request)
    context = RequestContext(
        headers=request.headers,
        user_agent=request.headers.get("user-agent", ""),
        ip_address=None if ip_address == "unknown" else ip_address,
        debug_bypass=is_debug_bypass(request.headers, request.app.state.settings),
    )
    outcome = await service.submit(payload, context)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.get("", response_model=WaitlistCountOut)
async def waitlist_count(service: WaitlistService = Depends(get_waitlist_service)):
    return WaitlistCountOut(count=await service.public_count())


@router.options("")
async def waitlist_options():
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


# ── Stats ─────────────────────────────


@router.get("/stats", response_model=WaitlistStatsResponse)
async def waitlist_stats(service: WaitlistService = Depends(get_waitlist_service)):
    return await service.stats()


@router.head("/stats")
async def waitlist_stats_head(service: WaitlistService = Depends(get_waitlist_service)):
    reachable = await service.is_store_reachable()
    return Response(
        status_code=status.HTTP_200_OK if reachable else status.HTTP_503_SERVICE_UNAVAILABLE
    )


@router.options("/stats")
async def waitlist_stats_options():
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


# ── Verification ─────────────────────────────


@router.get("/verify", response_class=HTMLResponse)
async def verify_email_page(
    request: Request,
    token: Optional[str] = None,
    service: WaitlistService = Depends(get_waitlist_service),
):
    try:
        outcome = await service.verify(token)
    except WaitlistError as e:
        return _render_page(
            request, "Verification failed", e.message, success=False, status_code=e.status_code
        )
    return _render_page(
        request,
        "Email verified",
        outcome.message,
        success=True,
        waitlist_position=outcome.waitlist_position,
    )


@router.post("/verify")
async def verify_email(request: Request, service: WaitlistService = Depends(get_waitlist_service)):
    body = await _read_json(request)
    token = body.get("token") if isinstance(body, dict) else None
    return _token_response(await service.verify(token))


# ── Unsubscribe ─────────────────────────────


@router.get("/unsubscribe", response_class=HTMLResponse)
async def unsubscribe_page(
    request: Request,
    token: Optional[str] = None,
    service: WaitlistService = Depends(get_waitlist_service),
):
    try:
        outcome = await service.unsubscribe(token)
    except WaitlistError as e:
        return _render_page(
            request, "Unsubscribe failed", e.message, success=False, status_code=e.status_code
        )
    return _render_page(request, "Unsubscribed", outcome.message, success=True)


@router.post("/unsubscribe")
async def unsubscribe(request: Request, service: WaitlistService = Depends(get_waitlist_service)):
    body = await _read_json(request)
    token = body.get("token") if isinstance(body, dict) else None
    return _token_response(await service.unsubscribe(token))


# ── Admin ─────────────────────────────


def require_admin(request: Request) -> None:
    """Admin key check, skipped when no ADMIN_API_KEY is configured."""
    settings = request.app.state.settings
    if is_debug_bypass(request.headers, settings):
        return
    expected = settings.ADMIN_API_KEY
    if not expected:
        return
    provided = request.headers.get("x-admin-key", "")
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise Unauthorized("Valid admin key required")


@router.post("/resend", dependencies=[Depends(require_admin)])
async def resend_verification(
    request: Request, service: WaitlistService = Depends(get_waitlist_service)
):
    body = await _read_json(request)
    email = body.get("email") if isinstance(body, dict) else None
    result = await service.resend_verification(email)
    return JSONResponse(
        content=api_body(
            success=result.success,
            message="Verification email resent" if result.success else "Verification email could not be sent",
            email_debug=result.to_dict(),
        )
    )


@email_router.get("/status", dependencies=[Depends(require_admin)])
async def email_status(request: Request):
    dispatcher = request.app.state.email_dispatcher
    connection = await dispatcher.test_connection()
    return {"ok": True, "configured": connection["configured"], "providers": connection["providers"]}
