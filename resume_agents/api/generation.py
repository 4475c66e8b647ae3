"""
Resume content generation API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from contextlib import contextmanager
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple, Type
import asyncio
import json
import logging
import threading
import time

from pydantic import BaseModel

from .models import (
    AchievementsSortRequest,
    AchievementsSortResponse,
    CoverLetterRequest,
    CoverLetterResponse,
    ExperienceTailorRequest,
    ExperienceTailorResponse,
    GenerationRequest,
    JobDescriptionRefineRequest,
    JobDescriptionRefineResponse,
    JobTitleRequest,
    JobTitleResponse,
    SkillsExtractRequest,
    SkillsExtractResponse,
    SkillsSortRequest,
    SkillsSortResponse,
    StreamError,
    StreamRequest,
    StreamResult,
    StreamStatus,
    SummaryRequest,
    SummaryResponse,
    TechStackSortRequest,
    TechStackSortResponse,
)
from ..agent.base import ModelBackend
from ..agent.factory import BackendFactory
from ..config import Config, get_config
from ..errors import BackendFailure, PipelineCancelled, ValidationExhausted
from ..pipeline import (
    CandidateFacts,
    extract_skills,
    generate_cover_letter,
    generate_job_title,
    generate_summary,
    refine_text,
    run_generation_pipeline,
    sort_achievements,
    sort_flat_list,
    sort_skill_groups,
    tailor_experience,
)
from ..pipeline.progress import ProgressEvent, ProgressSink

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["generation"])


def get_app_config() -> Config:
    """Configuration dependency"""
    return get_config()


def get_backend(config: Config = Depends(get_app_config)) -> ModelBackend:
    """Model backend dependency (overridden in tests)"""
    return BackendFactory.create_available(config)


def error_status(error: Exception) -> Tuple[int, str, List[str]]:
    """
    Map a pipeline error to an HTTP status.

    Returns:
        (status code, message, critique history)
    """
    if isinstance(error, ValidationExhausted):
        return 422, str(error), error.critiques
    if isinstance(error, BackendFailure):
        return 502, f"Model backend failed: {error}", []
    if isinstance(error, PipelineCancelled):
        return 409, str(error), []
    if isinstance(error, ValueError):
        return 400, str(error), []
    return 500, f"Generation failed: {error}", []


@contextmanager
def pipeline_errors(task: str):
    """Translate pipeline errors raised inside the block into HTTPException"""
    try:
        yield
    except (ValueError, ValidationExhausted, BackendFailure, PipelineCancelled) as e:
        status_code, message, critiques = error_status(e)
        logger.error(f"{task} failed ({status_code}): {message}")
        detail = {"message": message, "critiques": critiques} if critiques else message
        raise HTTPException(status_code=status_code, detail=detail)


# Runners shared by the HTTP endpoints and the websocket


def run_summary(
    request: SummaryRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SummaryResponse:
    start_time = time.time()
    facts = CandidateFacts(skills=request.skills, work_experience=request.work_experience)
    result = generate_summary(
        facts,
        request.job_description,
        on_progress,
        backend=backend,
        config=config,
        cancel_event=cancel_event,
    )
    return SummaryResponse(
        **result.model_dump(), processing_time=time.time() - start_time
    )


def run_skills_sort(
    request: SkillsSortRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SkillsSortResponse:
    start_time = time.time()
    result = sort_skill_groups(
        request.groups,
        request.job_description,
        on_progress,
        backend=backend,
        config=config,
        cancel_event=cancel_event,
    )
    return SkillsSortResponse(
        **result.model_dump(), processing_time=time.time() - start_time
    )


def run_tech_stack_sort(
    request: TechStackSortRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> TechStackSortResponse:
    start_time = time.time()
    items = sort_flat_list(
        request.items,
        request.job_description,
        on_progress,
        backend=backend,
        config=config,
        cancel_event=cancel_event,
    )
    return TechStackSortResponse(items=items, processing_time=time.time() - start_time)


def run_jd_refine(
    request: JobDescriptionRefineRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> JobDescriptionRefineResponse:
    start_time = time.time()
    text = refine_text(
        request.text, on_progress, backend=backend, config=config, cancel_event=cancel_event
    )
    return JobDescriptionRefineResponse(text=text, processing_time=time.time() - start_time)


def run_achievements_sort(
    request: AchievementsSortRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AchievementsSortResponse:
    start_time = time.time()
    result = sort_achievements(
        request.achievements,
        request.position,
        request.organization,
        request.job_description,
        on_progress,
        backend=backend,
        config=config,
        cancel_event=cancel_event,
    )
    return AchievementsSortResponse(
        **result.model_dump(), processing_time=time.time() - start_time
    )


def run_job_title(
    request: JobTitleRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> JobTitleResponse:
    start_time = time.time()
    title = generate_job_title(
        request.job_description,
        request.summary,
        request.recent_positions,
        on_progress,
        backend=backend,
        config=config,
        cancel_event=cancel_event,
    )
    return JobTitleResponse(title=title, processing_time=time.time() - start_time)


def run_experience_tailor(
    request: ExperienceTailorRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ExperienceTailorResponse:
    start_time = time.time()
    result = tailor_experience(
        request.experience,
        request.job_description,
        on_progress,
        backend=backend,
        config=config,
        cancel_event=cancel_event,
    )
    return ExperienceTailorResponse(
        **result.model_dump(), processing_time=time.time() - start_time
    )


def run_cover_letter(
    request: CoverLetterRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> CoverLetterResponse:
    start_time = time.time()
    facts = CandidateFacts(skills=request.skills, work_experience=request.work_experience)
    result = generate_cover_letter(
        facts,
        request.job_description,
        on_progress,
        summary=request.summary,
        name=request.name,
        backend=backend,
        config=config,
        cancel_event=cancel_event,
    )
    return CoverLetterResponse(
        **result.model_dump(), processing_time=time.time() - start_time
    )


def run_skills_extract(
    request: SkillsExtractRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SkillsExtractResponse:
    start_time = time.time()
    skills = extract_skills(
        request.job_description,
        on_progress,
        backend=backend,
        config=config,
        cancel_event=cancel_event,
    )
    return SkillsExtractResponse(skills=skills, processing_time=time.time() - start_time)


def run_generation(
    request: GenerationRequest,
    backend: ModelBackend,
    config: Config,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BaseModel:
    facts = CandidateFacts(skills=request.skills, work_experience=request.work_experience)
    return run_generation_pipeline(
        facts,
        request.job_description,
        on_progress,
        backend=backend,
        config=config,
        cancel_event=cancel_event,
    )


STREAM_TASKS: Dict[str, Tuple[Type[BaseModel], Callable[..., BaseModel]]] = {
    "summary": (SummaryRequest, run_summary),
    "skills_sort": (SkillsSortRequest, run_skills_sort),
    "tech_stack_sort": (TechStackSortRequest, run_tech_stack_sort),
    "jd_refine": (JobDescriptionRefineRequest, run_jd_refine),
    "achievements_sort": (AchievementsSortRequest, run_achievements_sort),
    "job_title": (JobTitleRequest, run_job_title),
    "experience_tailor": (ExperienceTailorRequest, run_experience_tailor),
    "cover_letter": (CoverLetterRequest, run_cover_letter),
    "skills_extract": (SkillsExtractRequest, run_skills_extract),
    "generation": (GenerationRequest, run_generation),
}


@router.post("/summary", response_model=SummaryResponse)
def create_summary(
    request: SummaryRequest,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """Generate a professional summary from declared skills and work history"""
    with pipeline_errors("summary"):
        return run_summary(request, backend, config)


@router.post("/skills/sort", response_model=SkillsSortResponse)
def sort_skills(
    request: SkillsSortRequest,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """Reorder skill groups and skills by job relevance"""
    with pipeline_errors("skills_sort"):
        return run_skills_sort(request, backend, config)


@router.post("/tech-stack/sort", response_model=TechStackSortResponse)
def sort_tech_stack(
    request: TechStackSortRequest,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """Reorder a flat technology list by job relevance"""
    with pipeline_errors("tech_stack_sort"):
        return run_tech_stack_sort(request, backend, config)


@router.post("/job-description/refine", response_model=JobDescriptionRefineResponse)
def refine_job_description(
    request: JobDescriptionRefineRequest,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """Reformat a raw job description into the four-section layout"""
    with pipeline_errors("jd_refine"):
        return run_jd_refine(request, backend, config)


@router.post("/achievements/sort", response_model=AchievementsSortResponse)
def sort_achievement_list(
    request: AchievementsSortRequest,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """Rank one position's achievements by job relevance"""
    with pipeline_errors("achievements_sort"):
        return run_achievements_sort(request, backend, config)


@router.post("/job-title", response_model=JobTitleResponse)
def create_job_title(
    request: JobTitleRequest,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """Generate a headline job title"""
    with pipeline_errors("job_title"):
        return run_job_title(request, backend, config)


@router.post("/experience/tailor", response_model=ExperienceTailorResponse)
def tailor_work_experience(
    request: ExperienceTailorRequest,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """Rewrite one position's description and achievements for a job description"""
    with pipeline_errors("experience_tailor"):
        return run_experience_tailor(request, backend, config)


@router.post("/cover-letter", response_model=CoverLetterResponse)
def create_cover_letter(
    request: CoverLetterRequest,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """Write a fact-checked cover letter"""
    with pipeline_errors("cover_letter"):
        return run_cover_letter(request, backend, config)


@router.post("/skills/extract", response_model=SkillsExtractResponse)
def extract_job_skills(
    request: SkillsExtractRequest,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """List the technical skills a job description asks for"""
    with pipeline_errors("skills_extract"):
        return run_skills_extract(request, backend, config)


@router.websocket("/stream")
async def stream_pipeline(
    websocket: WebSocket,
    backend: ModelBackend = Depends(get_backend),
    config: Config = Depends(get_app_config),
):
    """
    Run a pipeline with progress updates via WebSocket.

    The client sends {"task": name, "payload": {...}} and receives status
    events followed by a single result or error message. Disconnecting
    cancels the run at its next stage boundary.
    """
    await websocket.accept()

    try:
        request = StreamRequest(**json.loads(await websocket.receive_text()))
        if request.task not in STREAM_TASKS:
            raise ValueError(
                f"Unknown task '{request.task}'. Available: {', '.join(STREAM_TASKS)}"
            )
        request_model, runner = STREAM_TASKS[request.task]
        payload = request_model(**request.payload)
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected before the request arrived")
        return
    except ValueError as e:
        await websocket.send_json(
            StreamError(message=f"Invalid request: {e}", status_code=400).model_dump()
        )
        await websocket.close()
        return

    logger.info(f"Streaming task {request.task}")
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    cancel_event = threading.Event()

    def on_progress(event: ProgressEvent) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    async def watch_disconnect() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"Client disconnected; cancelling {request.task}")
                cancel_event.set()
                return

    async def send_status(event: ProgressEvent) -> None:
        await websocket.send_json(StreamStatus(**event.model_dump()).model_dump())

    watcher = asyncio.ensure_future(watch_disconnect())
    job = loop.run_in_executor(
        None, partial(runner, payload, backend, config, on_progress, cancel_event)
    )

    try:
        while not job.done():
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, job}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                await send_status(getter.result())
            else:
                getter.cancel()

        while not queue.empty():
            await send_status(queue.get_nowait())

        result = job.result()
        await websocket.send_json(
            StreamResult(task=request.task, data=result.model_dump()).model_dump()
        )
        await websocket.close()
        logger.info(f"Stream for {request.task} completed successfully")

    except WebSocketDisconnect:
        cancel_event.set()
        logger.info("WebSocket disconnected by client")
    except PipelineCancelled as e:
        # Only a disconnect cancels a streamed run; nobody is listening
        logger.info(f"Streaming {request.task} stopped: {e}")
    except Exception as e:
        # Errors outside the pipeline taxonomy map to 500
        status_code, message, critiques = error_status(e)
        logger.error(f"Streaming {request.task} failed ({status_code}): {message}")
        try:
            await websocket.send_json(
                StreamError(
                    message=message, status_code=status_code, critiques=critiques
                ).model_dump()
            )
            await websocket.close()
        except (RuntimeError, WebSocketDisconnect) as send_error:
            logger.error(f"Could not report the error to the client: {send_error}")
    finally:
        if not job.done():
            cancel_event.set()
        watcher.cancel()
