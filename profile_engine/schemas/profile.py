from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Literal, Optional


class ProfileSections(BaseModel):
    identityRole: str
    communicationStyle: str
    contentPriorities: str
    engagementApproach: str
    keyFramings: str


class AgentProfileResponse(BaseModel):
    project_id: str
    version: int
    source: str
    sections: ProfileSections
    updated_at: datetime


class InterviewProfileRequest(BaseModel):
    sections: ProfileSections


class SectionUpdate(BaseModel):
    content: str = Field(..., min_length=1)


class RollbackRequest(BaseModel):
    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
    )

    to_version: int = Field(..., ge=1)


class ProfileVersionSummary(BaseModel):
    version: int
    source: Literal["interview", "manual", "recommendation", "rollback"]
    recommendation_set_id: Optional[str] = None
    restored_from_version: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProfileVersionResponse(ProfileVersionSummary):
    project_id: str
    sections: ProfileSections


class VersionHistoryResponse(BaseModel):
    versions: list[ProfileVersionSummary]
    current_version: int


class ProfileMutationResponse(BaseModel):
    """Returned by every call that appends a version."""

    new_version: int
    profile: AgentProfileResponse
