import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional


class NotFound(Exception):
    """Raised when a session id is not present in the store."""


class Conflict(Exception):
    """Raised when creating a session whose id already exists."""


class JsonSessionRepository:
    """Repository for chat sessions kept in a single JSON document on disk.

    The document has the shape ``{"sessions": [...]}`` and is rewritten
    wholesale on every mutating call. There is no locking: one active
    writer is assumed.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        if not self.db_path.exists():
            logging.info(f"Initialising session database at {self.db_path}")
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._write_db({"sessions": []})
        logging.info(f"JsonSessionRepository initialized with database '{self.db_path}'")

    # --------------------------------------------------------------------- #
    # File access
    # --------------------------------------------------------------------- #
    def _read_db(self) -> Dict[str, Any]:
        try:
            with open(self.db_path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logging.error(f"Error reading session database {self.db_path}: {e}")
            return {"sessions": []}
        if not isinstance(data, dict) or not isinstance(data.get("sessions"), list):
            logging.error(f"Malformed session database {self.db_path}, expected a 'sessions' array")
            return {"sessions": []}
        return data

    def _write_db(self, data: Dict[str, Any]) -> None:
        tmp_path = self.db_path.with_name(self.db_path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.db_path)

    # --------------------------------------------------------------------- #
    # Session persistence
    # --------------------------------------------------------------------- #
    def list_sessions(self) -> List[Dict[str, Any]]:
        return self._read_db()["sessions"]

    def create_session(self, session: Dict[str, Any]) -> Dict[str, Any]:
        db = self._read_db()
        if any(s.get("id") == session.get("id") for s in db["sessions"]):
            raise Conflict(f"Session with ID {session.get('id')} already exists")
        db["sessions"].append(session)
        self._write_db(db)
        logging.info(f"Created session {session.get('id')}")
        return session

    def update_session(
        self,
        session_id: str,
        updates: Dict[str, Any],
        validate: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> Dict[str, Any]:
        """Shallow-merges *updates* onto the stored session and returns it.

        *validate* sees the merged record before it is written; whatever it
        raises propagates and the file is left untouched.
        """
        db = self._read_db()
        for index, existing in enumerate(db["sessions"]):
            if existing.get("id") == session_id:
                merged = {**existing, **updates, "id": session_id}
                if validate is not None:
                    validate(merged)
                db["sessions"][index] = merged
                self._write_db(db)
                return merged
        raise NotFound(f"Session with ID {session_id} not found")

    def delete_session(self, session_id: str) -> None:
        db = self._read_db()
        remaining = [s for s in db["sessions"] if s.get("id") != session_id]
        if len(remaining) != len(db["sessions"]):
            logging.info(f"Deleted session {session_id}")
        db["sessions"] = remaining
        self._write_db(db)
