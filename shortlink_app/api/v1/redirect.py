from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, RedirectResponse

from shortlink_app.dependencies import get_request_context, get_resolution_engine
from shortlink_app.schemas.link import AccessRequest, AccessResponse
from shortlink_app.services.access_recorder import RequestContext
from shortlink_app.services.resolution_engine import ResolutionEngine

router = APIRouter(tags=["redirect"])


@router.post("/api/v1/s/{short_code}", response_model=AccessResponse)
async def access_short_code(
    short_code: str,
    payload: AccessRequest,
    context: RequestContext = Depends(get_request_context),
    engine: ResolutionEngine = Depends(get_resolution_engine)
):
    """
    Resolve a short code to its current target.

    Returns ``password_required: true`` (and no target) when an active
    password protects the link and none was supplied; 401 when the
    supplied password matches none of them.
    """
    return await engine.resolve(short_code, password=payload.password, context=context)


@router.get("/{short_code}")
async def redirect_short_code(
    short_code: str,
    context: RequestContext = Depends(get_request_context),
    engine: ResolutionEngine = Depends(get_resolution_engine)
):
    """
    Redirect to the link's current target.

    Access is recorded in the background, so the redirect never waits on it.
    Password-protected links answer 401 with ``password_required`` so the
    client can prompt and retry through the access endpoint.
    """
    result = await engine.resolve(short_code, context=context)

    if result.password_required:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Password required", "password_required": True},
        )

    return RedirectResponse(url=result.target_url, status_code=status.HTTP_302_FOUND)
