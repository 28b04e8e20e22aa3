"""Admission webhook endpoints.

The API server posts an AdmissionReview to
`/validation/{resource}.{group}` or `/mutation/{resource}.{group}` and
receives the same review back with `response` set. Bodies that are not a
decodable AdmissionReview get a 500, the status the API server expects from
a webhook that could not process the call.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from rbacguard.admission.dispatch import AdmissionDispatcher, decode_review
from rbacguard.api.dependencies.admission import get_dispatcher
from rbacguard.core.exceptions import InvalidRequestError
from rbacguard.core.logging import get_logger
from rbacguard.models.admission import AdmissionReview

logger = get_logger(__name__)

router = APIRouter()


async def _decode(request: Request) -> AdmissionReview:
    try:
        return decode_review(await request.json())
    except ValueError as e:
        # Covers JSONDecodeError and UnicodeDecodeError
        logger.error(f"Rejecting admission request: body is not JSON: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"failed to decode AdmissionReview: {e}",
        )
    except InvalidRequestError as e:
        logger.error(f"Rejecting admission request: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )


def _not_served(kind: str, path: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"no {kind} handler registered for {path}",
    )


@router.post("/validation/{path}", response_model_exclude_none=True)
async def validate(
    path: str,
    request: Request,
    dispatcher: AdmissionDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    """Run the validating handler for `path` and return the decision."""
    if path not in dispatcher.validators:
        raise _not_served("validating", path)
    review = await _decode(request)
    # Handlers block on Redis and the Kubernetes API
    result = await run_in_threadpool(dispatcher.validate, path, review)
    return result.to_wire()


@router.post("/mutation/{path}", response_model_exclude_none=True)
async def mutate(
    path: str,
    request: Request,
    dispatcher: AdmissionDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    """Run the mutating handler for `path` and return the decision and patch."""
    if path not in dispatcher.mutators:
        raise _not_served("mutating", path)
    review = await _decode(request)
    result = await run_in_threadpool(dispatcher.mutate, path, review)
    return result.to_wire()


@router.get("/paths")
def served_paths(dispatcher: AdmissionDispatcher = Depends(get_dispatcher)) -> Dict[str, Any]:
    """List the resources with a registered handler."""
    return {
        "validation": dispatcher.validating_paths(),
        "mutation": dispatcher.mutating_paths(),
    }
