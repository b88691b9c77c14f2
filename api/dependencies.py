"""Request dependencies shared by the API routes."""
from fastapi import Header, HTTPException, Request, status

from api.services.orchestrator import ExtractionOrchestrator


async def get_current_user_id(x_user_id: str = Header(default="")) -> str:
    """Caller identity, taken from the X-User-Id header."""
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header"
        )
    return user_id


def get_orchestrator(request: Request) -> ExtractionOrchestrator:
    """The orchestrator built during application start-up."""
    return request.app.state.orchestrator
