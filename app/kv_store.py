import json
import logging
from typing import Callable, Optional, Protocol, Tuple

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import UpstreamError
from db.models import KVEntry

logger = logging.getLogger(__name__)


class KVStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def get_versioned(self, key: str) -> Tuple[Optional[str], int]: ...

    def put_if_revision(self, key: str, value: str, expected_revision: int) -> bool: ...


class SqlKVStore:
    """
    Durable string key-value store on a single SQLAlchemy table.
    Every write bumps the row revision so callers can do compare-and-swap.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        value, _ = self.get_versioned(key)
        return value

    def get_versioned(self, key: str) -> Tuple[Optional[str], int]:
        try:
            entry = self.db.query(KVEntry).filter_by(key=key).first()
        except SQLAlchemyError as e:
            raise UpstreamError(f"Key-value store read failed: {e}") from e
        if entry is None:
            return None, 0
        return entry.value, entry.revision

    def put(self, key: str, value: str) -> None:
        try:
            entry = self.db.query(KVEntry).filter_by(key=key).first()
            if entry:
                entry.value = value
                entry.revision = entry.revision + 1
            else:
                self.db.add(KVEntry(key=key, value=value, revision=1))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamError(f"Key-value store write failed: {e}") from e

    def put_if_revision(self, key: str, value: str, expected_revision: int) -> bool:
        """
        Write only if the stored revision still equals expected_revision.
        Revision 0 means "key must not exist yet".
        """
        try:
            if expected_revision == 0:
                self.db.execute(insert(KVEntry).values(key=key, value=value, revision=1))
                self.db.commit()
                return True

            updated = (
                self.db.query(KVEntry)
                .filter_by(key=key, revision=expected_revision)
                .update(
                    {"value": value, "revision": expected_revision + 1},
                    synchronize_session=False,
                )
            )
            self.db.commit()
            return updated == 1
        except IntegrityError:
            # someone inserted the key first
            self.db.rollback()
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamError(f"Key-value store write failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.db.query(KVEntry).filter_by(key=key).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamError(f"Key-value store delete failed: {e}") from e


def parse_json_list(raw: Optional[str], key: str) -> list:
    """Absent or malformed blobs read as an empty list."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Malformed JSON blob at %s, treating as empty", key)
        return []
    if not isinstance(data, list):
        logger.warning("Blob at %s is not a list, treating as empty", key)
        return []
    return data


def update_json_blob(
    store: KVStore,
    key: str,
    mutate: Callable[[list], list],
    retries: int = 5,
) -> list:
    """
    Read-modify-write a JSON list blob with compare-and-swap.
    `mutate` gets the latest stored list and returns the new one; it runs
    again on every conflict, so it must only depend on its argument.
    """
    for attempt in range(1, retries + 1):
        raw, revision = store.get_versioned(key)
        current = parse_json_list(raw, key)
        updated = mutate(current)
        if store.put_if_revision(key, json.dumps(updated), revision):
            return updated
        logger.warning("Write conflict on %s (attempt %d/%d)", key, attempt, retries)

    raise UpstreamError(f"Gave up writing {key} after {retries} conflicting attempts")
