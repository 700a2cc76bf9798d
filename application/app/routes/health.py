from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health_check(request: Request):
    details = {
        "status": "healthy",
        "service": request.app.state.configs.APP_NAME,
        "version": request.app.state.configs.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "otp_store": request.app.state.otp_store.backend,
    }
    return details
