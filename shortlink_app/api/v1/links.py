from typing import List

from fastapi import APIRouter, Depends, Query, status

from shortlink_app.dependencies import get_link_service, get_owner_id
from shortlink_app.schemas.link import (
    CodeAvailability, LinkCreate, LinkListResponse, LinkResponse, LinkUpdate,
    PasswordCreate, PasswordResponse, ScheduleCreate, ScheduleResponse, ScheduleUpdate,
)
from shortlink_app.services.link_service import LinkService

router = APIRouter(tags=["links"])


@router.post("/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    payload: LinkCreate,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    """Create a link with a custom or generated short code"""
    return await link_service.create_link(
        owner_id=owner_id,
        target_url=payload.target_url,
        short_code=payload.short_code,
        expires_at=payload.expires_at,
        access_limit=payload.access_limit,
        meta_tag=payload.meta_tag,
    )


@router.get("/links", response_model=LinkListResponse)
async def list_links(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    return await link_service.list_links(owner_id, page=page, limit=limit)


@router.get("/links/check/{short_code}", response_model=CodeAvailability)
async def check_code(
    short_code: str,
    link_service: LinkService = Depends(get_link_service)
):
    """Tell whether a custom short code is still free"""
    available = await link_service.is_code_available(short_code)
    return CodeAvailability(short_code=short_code, available=available)


@router.get("/links/{link_id}", response_model=LinkResponse)
async def get_link(
    link_id: str,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    return await link_service.get_link(owner_id, link_id)


@router.patch("/links/{link_id}", response_model=LinkResponse)
async def update_link(
    link_id: str,
    payload: LinkUpdate,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    """Change target URL, active flag, expiry, access limit or meta tag"""
    return await link_service.update_link(owner_id, link_id, payload.model_dump(exclude_unset=True))


@router.delete("/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_link(
    link_id: str,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    """Soft delete a link"""
    await link_service.delete_link(owner_id, link_id)


@router.post(
    "/links/{link_id}/schedules",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_schedule(
    link_id: str,
    payload: ScheduleCreate,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    """Serve a different target URL during a time window"""
    return await link_service.add_schedule(
        owner_id, link_id, payload.target_url, payload.start_time, payload.end_time
    )


@router.get("/links/{link_id}/schedules", response_model=List[ScheduleResponse])
async def list_schedules(
    link_id: str,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    return await link_service.list_schedules(owner_id, link_id)


@router.patch("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: str,
    payload: ScheduleUpdate,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    return await link_service.update_schedule(owner_id, schedule_id, payload.model_dump(exclude_unset=True))


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    schedule_id: str,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    await link_service.delete_schedule(owner_id, schedule_id)


@router.post(
    "/links/{link_id}/passwords",
    response_model=PasswordResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_password(
    link_id: str,
    payload: PasswordCreate,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    """Protect a link with a password, optionally only during a time window"""
    return await link_service.add_password(
        owner_id, link_id, payload.password, payload.start_time, payload.end_time
    )


@router.get("/links/{link_id}/passwords", response_model=List[PasswordResponse])
async def list_passwords(
    link_id: str,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    return await link_service.list_passwords(owner_id, link_id)


@router.delete("/passwords/{password_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_password(
    password_id: str,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    await link_service.remove_password(owner_id, password_id)
