from fastapi import APIRouter, Response, status

from permits import util

router = APIRouter()


@router.get(
    "/api/health",
    tags=[util.Tags.meta],
    status_code=status.HTTP_204_NO_CONTENT,
)
async def health() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers={"Cache-Control": "no-store"})
