from pathlib import Path

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse, PlainTextResponse


def build_frontend_router(dist_path: str) -> APIRouter:
    """Serves the compiled front-end and falls back to index.html for SPA routes."""
    router = APIRouter(tags=["frontend"])
    dist = Path(dist_path).resolve()

    @router.get("/{full_path:path}", include_in_schema=False)
    async def serve_frontend(full_path: str):
        if full_path.startswith("api/"):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

        if full_path:
            candidate = (dist / full_path).resolve()
            if candidate.is_file() and dist in candidate.parents:
                return FileResponse(candidate)

        index_path = dist / "index.html"
        if index_path.is_file():
            return FileResponse(index_path)
        return PlainTextResponse(
            "Front-end not built. Run 'npm run build' first.",
            status_code=status.HTTP_404_NOT_FOUND,
        )

    return router
