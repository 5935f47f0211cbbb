"""/current endpoint: what is playing right now."""

import math

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from oauth.errors import UpstreamError, UpstreamRateLimited

router = APIRouter(tags=["player"])


@router.get("/current")
async def current(request: Request):
    """Currently playing track, or {"playing": false} when idle."""
    client = request.app.state.upstream
    try:
        now_playing = await client.fetch_currently_playing()
    except UpstreamRateLimited as e:
        return JSONResponse(
            {"error": e.message},
            status_code=e.status_code,
            headers={"Retry-After": str(math.ceil(e.retry_after))},
        )
    except UpstreamError as e:
        return JSONResponse({"error": e.message}, status_code=e.status_code)
    return now_playing.to_dict()
