from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from profile_engine.config import Settings, get_settings
from profile_engine.database import get_db
from profile_engine.models import ProfileVersion
from profile_engine.schemas import (
    AgentProfileResponse,
    InterviewProfileRequest,
    ProfileMutationResponse,
    ProfileVersionResponse,
    ProfileVersionSummary,
    RollbackRequest,
    SectionUpdate,
    VersionHistoryResponse,
)
from profile_engine.services.versions import VersionStore

router = APIRouter()


def to_profile_response(version: ProfileVersion) -> AgentProfileResponse:
    return AgentProfileResponse(
        project_id=version.project_id,
        version=version.version,
        source=version.source,
        sections=version.sections,
        updated_at=version.created_at,
    )


def to_mutation_response(version: ProfileVersion) -> ProfileMutationResponse:
    return ProfileMutationResponse(new_version=version.version, profile=to_profile_response(version))


@router.get("", response_model=AgentProfileResponse)
async def get_profile(
    project_id: str,
    db: AsyncSession = Depends(get_db),
):
    current = await VersionStore(db).require_current(project_id)
    return to_profile_response(current)


@router.post("", response_model=ProfileMutationResponse, status_code=201)
async def complete_interview(
    project_id: str,
    request: InterviewProfileRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    store = VersionStore(db, max_retries=settings.version_write_retries)
    version = await store.record_interview_profile(project_id, request.sections.model_dump())
    return to_mutation_response(version)


@router.patch("/sections/{section}", response_model=ProfileMutationResponse)
async def update_section(
    project_id: str,
    section: str,
    update: SectionUpdate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    store = VersionStore(db, max_retries=settings.version_write_retries)
    version = await store.update_section(
        project_id, section, update.content, max_chars=settings.section_max_chars
    )
    return to_mutation_response(version)


@router.get("/versions", response_model=VersionHistoryResponse)
async def list_versions(
    project_id: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    versions, current = await VersionStore(db).list_versions(project_id, limit=limit)
    return VersionHistoryResponse(
        versions=[ProfileVersionSummary.model_validate(v) for v in versions],
        current_version=current,
    )


@router.get("/versions/{version}", response_model=ProfileVersionResponse)
async def get_version(
    project_id: str,
    version: int,
    db: AsyncSession = Depends(get_db),
):
    found = await VersionStore(db).get_version(project_id, version)
    return ProfileVersionResponse.model_validate(found)


@router.post("/rollback", response_model=ProfileMutationResponse)
async def rollback_profile(
    project_id: str,
    request: RollbackRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    store = VersionStore(db, max_retries=settings.version_write_retries)
    version = await store.rollback(project_id, request.to_version)
    return to_mutation_response(version)
