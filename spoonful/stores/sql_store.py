"""
SQLAlchemy-backed document store.

This store persists documents in a single relational table so data survives
restarts. It is enabled by setting the DATABASE_URL environment variable (any
SQLAlchemy URL, e.g. postgresql+psycopg2://... or sqlite:///spoonful.db).

Layout: one row per top-level document, keyed by (collection, key), with the
document body stored as JSON text. For example "recipes/-Nabc" is the row
("recipes", "-Nabc") and "users/u1/favorites/r1" lives inside the body of the
row ("users", "u1").

Transactions lock the affected row with SELECT ... FOR UPDATE on backends that
support it; a process-wide lock serializes writers within this process.
Subscriptions are process-local: listeners are notified after this process
commits a write, not when another process writes.
"""

import copy
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from .base import ABORT, DocumentStore, StoreError

logger = logging.getLogger(__name__)

Base = declarative_base()


class DocumentRow(Base):
    """Documents table - one row per top-level document."""
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    collection = Column(String(255), nullable=False)
    key = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_document_lookup", "collection", "key", unique=True),
    )


def _get_in(tree: Any, segments: Tuple[str, ...]) -> Any:
    node = tree
    for segment in segments:
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node


def _set_in(tree: Dict[str, Any], segments: Tuple[str, ...], value: Any) -> None:
    """Set or (value None) delete a nested value, pruning emptied parents."""
    if value is None:
        trail = [tree]
        node: Any = tree
        for segment in segments[:-1]:
            node = node.get(segment) if isinstance(node, dict) else None
            if not isinstance(node, dict):
                return
            trail.append(node)
        trail[-1].pop(segments[-1], None)
        for depth in range(len(segments) - 1, 0, -1):
            if trail[depth]:
                break
            trail[depth - 1].pop(segments[depth - 1], None)
        return

    node = tree
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[segments[-1]] = value


class SqlDocumentStore(DocumentStore):
    """Document store persisted through SQLAlchemy."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        super().__init__()
        if not database_url:
            raise StoreError("SqlDocumentStore requires a database URL")

        engine_kwargs: Dict[str, Any] = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # Share the single in-memory database across sessions
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        try:
            self.engine = create_engine(database_url, **engine_kwargs)
            self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
            Base.metadata.create_all(bind=self.engine)
        except Exception as e:
            raise StoreError(f"Failed to initialize database: {e}") from e

        self._write_lock = threading.RLock()
        logger.info("SQL document store initialized (%s)", self.engine.url.get_backend_name())

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load_row(db: Session, collection: str, key: str, for_update: bool = False) -> Optional[DocumentRow]:
        query = db.query(DocumentRow).filter(DocumentRow.collection == collection, DocumentRow.key == key)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def _save_row(db: Session, row: Optional[DocumentRow], collection: str, key: str, body: Any) -> None:
        if body is None or body == {}:
            if row is not None:
                db.delete(row)
            return
        encoded = json.dumps(body)
        if row is None:
            db.add(DocumentRow(collection=collection, key=key, body=encoded))
        else:
            row.body = encoded

    def _read_collection(self, db: Session, collection: str) -> Optional[Dict[str, Any]]:
        rows = (
            db.query(DocumentRow)
            .filter(DocumentRow.collection == collection)
            .order_by(DocumentRow.key)
            .all()
        )
        if not rows:
            return None
        return {row.key: json.loads(row.body) for row in rows}

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    def _read(self, segments: Tuple[str, ...]) -> Any:
        db = self.SessionLocal()
        try:
            if len(segments) == 1:
                return self._read_collection(db, segments[0])
            row = self._load_row(db, segments[0], segments[1])
            if row is None:
                return None
            return _get_in(json.loads(row.body), segments[2:])
        except Exception as e:
            raise StoreError(f"Error reading {'/'.join(segments)}: {e}") from e
        finally:
            db.close()

    def _apply(self, db: Session, segments: Tuple[str, ...], value: Any) -> None:
        collection = segments[0]
        if len(segments) == 1:
            # Replace the whole collection
            db.query(DocumentRow).filter(DocumentRow.collection == collection).delete()
            for key, body in (value or {}).items():
                self._save_row(db, None, collection, key, body)
            return

        row = self._load_row(db, collection, segments[1], for_update=True)
        if len(segments) == 2:
            self._save_row(db, row, collection, segments[1], value)
            return

        body = json.loads(row.body) if row is not None else {}
        if not isinstance(body, dict):
            body = {}
        _set_in(body, segments[2:], value)
        self._save_row(db, row, collection, segments[1], body)

    def _write(self, segments: Tuple[str, ...], value: Any) -> None:
        with self._write_lock:
            db = self.SessionLocal()
            try:
                self._apply(db, segments, copy.deepcopy(value))
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error("Error writing %s: %s", "/".join(segments), e)
                raise StoreError(f"Error writing {'/'.join(segments)}: {e}") from e
            finally:
                db.close()

    def _transact(self, segments: Tuple[str, ...], fn: Callable[[Any], Any]) -> Any:
        if len(segments) < 2:
            raise StoreError("Transactions must target a document or a field inside one")

        with self._write_lock:
            db = self.SessionLocal()
            try:
                row = self._load_row(db, segments[0], segments[1], for_update=True)
                body = json.loads(row.body) if row is not None else None
                current = body if len(segments) == 2 else _get_in(body, segments[2:])

                updated = fn(copy.deepcopy(current))
                if updated is ABORT:
                    db.rollback()
                    return current

                if len(segments) == 2:
                    new_body = updated
                else:
                    new_body = body if isinstance(body, dict) else {}
                    _set_in(new_body, segments[2:], copy.deepcopy(updated))
                self._save_row(db, row, segments[0], segments[1], new_body)
                db.commit()
                return updated
            except StoreError:
                db.rollback()
                raise
            except Exception as e:
                db.rollback()
                logger.error("Transaction failed on %s: %s", "/".join(segments), e)
                raise StoreError(f"Transaction failed on {'/'.join(segments)}: {e}") from e
            finally:
                db.close()

    def close(self) -> None:
        super().close()
        self.engine.dispose()
