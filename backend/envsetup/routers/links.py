import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from envsetup.schemas import OpenUrlRequest, OpenUrlResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["links"])


@router.post("/open-url", response_model=OpenUrlResponse)
async def open_url(body: OpenUrlRequest, request: Request):
    """Open a link from the dialog in the user's default browser."""
    if not body.url:
        return JSONResponse(
            status_code=400,
            content=OpenUrlResponse(success=False, error="url is required").model_dump(),
        )

    try:
        request.app.state.link_opener(body.url)
    except Exception as e:
        logger.error(f"Failed to open {body.url}: {e}")
        return JSONResponse(
            status_code=500,
            content=OpenUrlResponse(success=False, error=str(e)).model_dump(),
        )

    return OpenUrlResponse(success=True)
