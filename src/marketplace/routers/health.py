from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    settings = request.app.state.settings
    return {
        "status": "ok",
        "backend": request.app.state.backend.name,
        "payment_demo": settings.is_payment_demo,
    }
