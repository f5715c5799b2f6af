"""Translation lifecycle inspection endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException

from ...core.registry import get_service

router = APIRouter(prefix="/api/translations", tags=["translations"])


def _not_found(request_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={
            "error": {
                "message": f"No translation metrics for request '{request_id}'",
                "type": "invalid_request_error",
                "code": "not_found",
            }
        },
    )


@router.get("")
async def list_translations() -> dict[str, Any]:
    """Return the metrics of every request the recorder still holds."""
    recorder = get_service().recorder
    return {
        "object": "list",
        "data": [metrics.to_dict() for metrics in recorder.all_metrics()],
    }


@router.get("/{request_id}")
async def get_translation(request_id: str) -> dict[str, Any]:
    metrics = get_service().recorder.get(request_id)
    if metrics is None:
        raise _not_found(request_id)
    return metrics.to_dict()


@router.delete("/{request_id}")
async def release_translation(request_id: str) -> dict[str, Any]:
    """Release one entry, returning its final snapshot."""
    recorder = get_service().recorder
    metrics = recorder.get(request_id)
    if metrics is None:
        raise _not_found(request_id)
    recorder.release(request_id)
    return metrics.to_dict()


@router.delete("")
async def clear_translations() -> dict[str, Any]:
    """Drop every held entry."""
    recorder = get_service().recorder
    cleared = len(recorder)
    recorder.clear()
    return {"cleared": cleared}
