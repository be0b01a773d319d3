import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Response, status
from pydantic import ValidationError

from pedagochat.api.deps import get_repo
from pedagochat.models.domain import ChatSession
from pedagochat.services.json_store import Conflict, JsonSessionRepository, NotFound

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.get("", response_model=List[Dict[str, Any]])
def list_sessions(repo: JsonSessionRepository = Depends(get_repo)):
    """Returns the full session array."""
    try:
        return repo.list_sessions()
    except Exception as e:
        logging.error(f"Error listing sessions: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve sessions.")


@router.post("", status_code=status.HTTP_201_CREATED)
def create_session(
    session: ChatSession,
    repo: JsonSessionRepository = Depends(get_repo),
) -> Dict[str, Any]:
    """Stores one session object and echoes it back."""
    try:
        return repo.create_session(session.model_dump(mode="json", exclude_none=True))
    except Conflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        logging.error(f"Error creating session {session.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create session.")


@router.put("/{session_id}")
def update_session(
    session_id: str = Path(..., title="The ID of the session"),
    updates: Dict[str, Any] = Body(...),
    repo: JsonSessionRepository = Depends(get_repo),
) -> Dict[str, Any]:
    """Shallow-merges the body onto the stored session."""
    try:
        return repo.update_session(session_id, updates, validate=ChatSession.model_validate)
    except NotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found.")
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors(include_url=False, include_context=False))
    except Exception as e:
        logging.error(f"Error updating session {session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update session.")


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: str = Path(..., title="The ID of the session to delete"),
    repo: JsonSessionRepository = Depends(get_repo),
):
    """Deletes a session; unknown ids are not an error."""
    try:
        repo.delete_session(session_id)
    except Exception as e:
        logging.error(f"Error deleting session {session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete session.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
