from fastapi import APIRouter, HTTPException, Request

from hotel_ops.dependencies.auth import CurrentUser
from hotel_ops.dependencies.services import StaffUser
from hotel_ops.services.postgres import check_connection

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready", summary="Database readiness probe")
async def ready(request: Request) -> dict[str, str]:
    pool = getattr(request.app.state, "db_pool", None)
    if pool is None:
        raise HTTPException(status_code=503, detail="Database pool is not configured")
    try:
        await check_connection(pool)
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Database unavailable: {exc}") from exc
    return {"status": "ok"}


@router.get("/whoami", summary="Resolved caller")
async def whoami(user: CurrentUser) -> dict[str, object]:
    return {"user": user.username, "roles": [role.value for role in user.roles]}


@router.get("/secure", summary="Staff protected endpoint")
async def secure_ping(user: StaffUser) -> dict[str, str]:
    return {"status": "ok", "user": user.username}
