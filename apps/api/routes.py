from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from config.logging import get_logger
from core.errors import (
    ConfigurationError,
    ConsistencyFault,
    DuplicateExample,
    EmbeddingUnavailable,
    ExampleNotFound,
    InvalidArgument,
    QueryAssistantError,
)
from core.knowledge.schemas import (
    DuplicateGroup,
    ExampleListing,
    RemovalResult,
    SimilarExample,
    TrainingExample,
)
from rag.composer import format_few_shot
from rag.service import QueryService

router = APIRouter()
log = get_logger("api")


class FindSimilarRequest(BaseModel):
    question: str
    limit: Optional[int] = None
    threshold: Optional[float] = None


class AddExampleRequest(BaseModel):
    question: str
    query: str
    metadata: Optional[Dict[str, Any]] = None


class RemoveDuplicatesRequest(BaseModel):
    confirm: bool = False


def _service(request: Request) -> QueryService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return service


def _http_error(e: QueryAssistantError) -> HTTPException:
    """Converts a core error to the response the caller sees; the only place errors become text."""
    if isinstance(e, InvalidArgument):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ExampleNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, DuplicateExample):
        return HTTPException(status_code=409, detail={"message": str(e), "existing_id": e.existing_id})
    if isinstance(e, (ConfigurationError, EmbeddingUnavailable)):
        log.error(f"Embedding unavailable: {e}")
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, ConsistencyFault):
        return HTTPException(status_code=500, detail=f"Index consistency fault: {e}")
    log.error(f"Unhandled service error: {e}")
    return HTTPException(status_code=500, detail=str(e))


@router.post("/examples/similar", response_model=List[SimilarExample])
def find_similar(body: FindSimilarRequest, request: Request):
    try:
        return _service(request).find_similar(body.question, body.limit, body.threshold)
    except QueryAssistantError as e:
        raise _http_error(e)


@router.get("/examples/similar/prompt", response_class=PlainTextResponse)
def find_similar_prompt(
    request: Request,
    question: str = Query(..., description="Natural language question"),
    limit: Optional[int] = Query(None, description="Maximum examples (default 3, max 10)"),
    threshold: Optional[float] = Query(None, description="Minimum similarity 0-1 (default 0.7)"),
):
    try:
        results = _service(request).find_similar(question, limit, threshold)
    except QueryAssistantError as e:
        raise _http_error(e)
    return format_few_shot(question, results)


@router.post("/examples", status_code=201)
def add_example(body: AddExampleRequest, request: Request):
    try:
        example_id = _service(request).add_example(body.question, body.query, body.metadata)
    except QueryAssistantError as e:
        raise _http_error(e)
    return {"id": example_id}


@router.get("/examples", response_model=ExampleListing)
def list_examples(
    request: Request,
    limit: Optional[int] = Query(None, description="Maximum examples (default 10, max 100)"),
    domain: Optional[str] = Query(None, description="Only examples with this metadata.domain"),
):
    try:
        return _service(request).list_examples(limit, domain)
    except QueryAssistantError as e:
        raise _http_error(e)


@router.get("/examples/duplicates", response_model=List[DuplicateGroup])
def find_duplicates(request: Request):
    try:
        return _service(request).find_duplicate_groups()
    except QueryAssistantError as e:
        raise _http_error(e)


@router.post("/examples/duplicates/remove", response_model=RemovalResult)
def remove_duplicates(request: Request, body: Optional[RemoveDuplicatesRequest] = None):
    confirm = body.confirm if body is not None else False
    try:
        return _service(request).remove_duplicates(confirm)
    except QueryAssistantError as e:
        raise _http_error(e)


@router.get("/examples/{example_id}", response_model=TrainingExample)
def get_example(example_id: str, request: Request):
    try:
        return _service(request).get_example(example_id)
    except QueryAssistantError as e:
        raise _http_error(e)


@router.get("/training-data", response_model=List[TrainingExample])
def training_data(request: Request):
    try:
        return _service(request).training_data()
    except QueryAssistantError as e:
        raise _http_error(e)
