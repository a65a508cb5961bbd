from fastapi import APIRouter, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from magica_bridge.converter import SceneDocumentError
from magica_bridge.models import (
    ConversionRequest,
    ConversionResponse,
    InlineConversionRequest,
)
from magica_bridge.services.conversion import ConversionFailedError, ConversionService

router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health() -> dict[str, str]:
    """Simple liveness probe."""
    return {"status": "ok"}


@router.post("/convert", response_model=ConversionResponse, status_code=status.HTTP_202_ACCEPTED)
async def convert(request: ConversionRequest) -> ConversionResponse:
    """Convert a stored scene document and store the result."""
    service = ConversionService()
    try:
        return await run_in_threadpool(service.convert, request)
    except (FileNotFoundError, IsADirectoryError, SceneDocumentError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ConversionFailedError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc


@router.post("/convert/inline", response_model=ConversionResponse, status_code=status.HTTP_200_OK)
async def convert_inline(request: InlineConversionRequest) -> ConversionResponse:
    """Convert a scene document sent in the request body and return it."""
    service = ConversionService()
    try:
        return await run_in_threadpool(service.convert_inline, request)
    except (SceneDocumentError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
