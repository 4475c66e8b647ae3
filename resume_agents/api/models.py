"""
Pydantic models for API request/response validation
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any

from ..pipeline.skills_sorting import SkillGroup
from ..pipeline.summary import WorkExperience


# Summary Models
class SummaryRequest(BaseModel):
    """Request model for professional summary generation"""
    skills: List[str] = Field(default_factory=list, description="Declared skills (the allow-list)")
    work_experience: List[WorkExperience] = Field(default_factory=list)
    job_description: str = ""


class SummaryResponse(BaseModel):
    """Generated summary"""
    text: str
    approved: bool
    warnings: List[str] = Field(default_factory=list)
    unlisted_mentions: List[str] = Field(default_factory=list)
    processing_time: float


# Sorting Models
class SkillsSortRequest(BaseModel):
    """Request model for skill group sorting"""
    groups: List[SkillGroup]
    job_description: str = ""


class SkillsSortResponse(BaseModel):
    """Sorted skill groups"""
    group_order: List[str]
    skill_order: Dict[str, List[str]]
    missing_skills: List[str] = Field(default_factory=list)
    processing_time: float


class TechStackSortRequest(BaseModel):
    """Request model for flat technology list sorting"""
    items: List[str]
    job_description: str = ""


class TechStackSortResponse(BaseModel):
    """Sorted technology list"""
    items: List[str]
    processing_time: float


class AchievementsSortRequest(BaseModel):
    """Request model for achievement ranking"""
    achievements: List[str]
    position: str = ""
    organization: str = ""
    job_description: str = ""


class AchievementsSortResponse(BaseModel):
    """Ranked achievements"""
    ranked_indices: List[int]
    achievements: List[str]
    processing_time: float


# Text Models
class JobDescriptionRefineRequest(BaseModel):
    """Request model for job description refinement"""
    text: str = Field(..., description="Raw job description")


class JobDescriptionRefineResponse(BaseModel):
    """Refined job description"""
    text: str
    processing_time: float


class JobTitleRequest(BaseModel):
    """Request model for job title generation"""
    job_description: str
    summary: Optional[str] = None
    recent_positions: List[str] = Field(
        default_factory=list, description='"Position at Organization" lines, newest first'
    )


class JobTitleResponse(BaseModel):
    """Generated job title"""
    title: str
    processing_time: float


# Experience and Cover Letter Models
class ExperienceTailorRequest(BaseModel):
    """Request model for tailoring one work experience"""
    experience: WorkExperience
    job_description: str


class ExperienceTailorResponse(BaseModel):
    """Tailored work experience"""
    description: str
    achievements: List[str]
    tech_stack: List[str] = Field(default_factory=list)
    approved: bool
    warnings: List[str] = Field(default_factory=list)
    processing_time: float


class CoverLetterRequest(BaseModel):
    """Request model for cover letter generation"""
    skills: List[str] = Field(default_factory=list)
    work_experience: List[WorkExperience] = Field(default_factory=list)
    job_description: str
    summary: Optional[str] = None
    name: Optional[str] = None


class CoverLetterResponse(BaseModel):
    """Generated cover letter"""
    text: str
    word_count: int
    approved: bool
    warnings: List[str] = Field(default_factory=list)
    processing_time: float


class SkillsExtractRequest(BaseModel):
    """Request model for job description skill extraction"""
    job_description: str


class SkillsExtractResponse(BaseModel):
    """Skills the job description asks for"""
    skills: List[str]
    processing_time: float


class GenerationRequest(BaseModel):
    """Request model for the full generation pipeline"""
    skills: List[str] = Field(default_factory=list)
    work_experience: List[WorkExperience] = Field(default_factory=list)
    job_description: str


# Streaming Models
class StreamRequest(BaseModel):
    """First message on the streaming websocket"""
    task: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class StreamStatus(BaseModel):
    """Progress event during streaming"""
    type: str = "status"
    stage: str
    message: str
    done: bool = False


class StreamResult(BaseModel):
    """Final result message for streaming"""
    type: str = "result"
    task: str
    data: Dict[str, Any]


class StreamError(BaseModel):
    """Error message for streaming"""
    type: str = "error"
    message: str
    status_code: int = 500
    critiques: List[str] = Field(default_factory=list)
