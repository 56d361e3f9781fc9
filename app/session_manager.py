from typing import Any, Dict, List

from app.kv_store import KVStore, parse_json_list, update_json_blob
from app.models import SessionMetadata


def history_key(user_id: str, session_id: str) -> str:
    return f"users:{user_id}:chat_history:{session_id}"


def index_key(user_id: str) -> str:
    return f"users:{user_id}:all_session_metadata"


# =========================
# SESSION STORE (transcripts)
# =========================

def get_history(store: KVStore, user_id: str, session_id: str) -> List[Dict[str, Any]]:
    """
    Full transcript of a session in append order.
    Absent or unreadable data is an empty history, never an error.
    """
    key = history_key(user_id, session_id)
    return [m for m in parse_json_list(store.get(key), key) if isinstance(m, dict)]


def append_turn(
    store: KVStore,
    user_id: str,
    session_id: str,
    user_msg: Dict[str, Any],
    assistant_msg: Dict[str, Any],
    retries: int = 5,
) -> List[Dict[str, Any]]:
    """
    Append one user message and its reply to the stored transcript.
    Both messages land on top of the latest stored history, so a turn written
    concurrently on the same session is kept rather than overwritten.
    Returns the persisted history.
    """
    return update_json_blob(
        store,
        history_key(user_id, session_id),
        lambda history: [m for m in history if isinstance(m, dict)] + [user_msg, assistant_msg],
        retries=retries,
    )


def delete_history(store: KVStore, user_id: str, session_id: str) -> None:
    store.delete(history_key(user_id, session_id))


# =========================
# SESSION INDEX (summaries)
# =========================

def list_sessions(store: KVStore, user_id: str) -> List[Dict[str, Any]]:
    """Session metadata for a user, in storage order (not meaningful)."""
    key = index_key(user_id)
    return parse_json_list(store.get(key), key)


def upsert_session(
    store: KVStore,
    user_id: str,
    session_id: str,
    summary: str,
    timestamp: str,
    retries: int = 5,
) -> None:
    entry = SessionMetadata(id=session_id, summary=summary, timestamp=timestamp).model_dump()

    def _upsert(sessions: list) -> list:
        sessions = [s for s in sessions if isinstance(s, dict)]
        for i, s in enumerate(sessions):
            if s.get("id") == session_id:
                sessions[i] = entry
                return sessions
        return sessions + [entry]

    update_json_blob(store, index_key(user_id), _upsert, retries=retries)


def remove_session(store: KVStore, user_id: str, session_id: str, retries: int = 5) -> None:
    update_json_blob(
        store,
        index_key(user_id),
        lambda sessions: [s for s in sessions if not (isinstance(s, dict) and s.get("id") == session_id)],
        retries=retries,
    )


def delete_session(store: KVStore, user_id: str, session_id: str, retries: int = 5) -> None:
    """
    Transcript first, then index entry. If the second step fails the index
    keeps a dangling entry whose history reads back as empty.
    """
    delete_history(store, user_id, session_id)
    remove_session(store, user_id, session_id, retries=retries)
