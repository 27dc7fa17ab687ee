"""
Document store backed by SQLAlchemy.

Every canonical record is one JSON document addressed by (collection, key).
The store supplies the primitives the ingestion engine needs: plain reads,
overwrite, shallow merge, atomic read-merge-write, and batched commits that
are one transaction each.
"""

import threading
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, UniqueConstraint, create_engine, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..utils.config import DatabaseConfig, get_config
from ..utils.exceptions import StoreWriteError
from ..utils.logger import get_logger

Base = declarative_base()

Document = Dict[str, Any]
MergeFn = Callable[[Optional[Document]], Document]
Write = Tuple[str, Union[Mapping[str, Any], MergeFn]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(Base):
    """
    SQLAlchemy model for one stored document.

    The unique (collection, key) constraint is what makes "at most one
    record per day" hold at the storage level.
    """

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(100), nullable=False)
    key = Column(String(100), nullable=False)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("collection", "key", name="uq_collection_key"),
        Index("idx_collection_updated", "collection", "updated_at"),
    )


class DocumentStore:
    """
    Keyed JSON document store.

    Handles:
    - Schema creation
    - Reads, overwrites and shallow merges of single documents
    - Atomic read-merge-write of a single document
    - Batched commits, one transaction per batch
    """

    # Hard ceiling on writes per batch_commit call
    max_batch_writes = 500

    def __init__(self, db_config: Optional[DatabaseConfig] = None, url: Optional[str] = None):
        """
        Initialize the document store.

        Args:
            db_config: Optional database configuration. If None, loads from environment.
            url: Optional SQLAlchemy URL; overrides db_config when given.
        """
        self.logger = get_logger("database.store")
        if url is None:
            self.db_config = db_config or get_config().database
            url = self.db_config.url()

        engine_kwargs: Dict[str, Any] = {"echo": False, "pool_pre_ping": True}
        self._write_lock = nullcontext()
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            # SQLite has no row locks; serialize read-merge-write in process
            self._write_lock = threading.Lock()
        else:
            engine_kwargs["pool_recycle"] = 3600

        try:
            self.engine = create_engine(url, **engine_kwargs)
            self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
            self.logger.info(f"Document store initialized for {self.engine.dialect.name}")
        except Exception as e:
            self.logger.error(f"Failed to initialize document store: {e}")
            raise StoreWriteError(f"Failed to initialize document store: {e}") from e

    def create_tables(self):
        """
        Create all database tables.

        Safe to call multiple times (won't recreate existing tables).
        """
        try:
            Base.metadata.create_all(self.engine)
            self.logger.info("Document tables created/verified")
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to create tables: {e}")
            raise StoreWriteError(f"Failed to create tables: {e}") from e

    def dispose(self):
        self.engine.dispose()

    def get(self, collection: str, key: str) -> Optional[Document]:
        """
        Read one document.

        Returns:
            A copy of the stored document, or None if absent
        """
        with self.SessionLocal() as session:
            row = self._find(session, collection, key)
            return dict(row.data) if row is not None else None

    def set(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        """Overwrite one document (last-write-wins)."""
        self._transact(collection, [(key, lambda _previous: dict(data))])

    def set_merge(self, collection: str, key: str, partial: Mapping[str, Any]) -> None:
        """Shallow-merge top-level fields into one document, creating it if absent."""
        self._transact(collection, [(key, partial)])

    def merge_update(self, collection: str, key: str, merge_fn: MergeFn) -> Document:
        """
        Atomically read, merge and write one document.

        The merge function receives the current document (or None) and
        returns the full replacement document. Read and write happen in the
        same transaction, with the row locked where the dialect supports it.

        Returns:
            The document as written

        Raises:
            StoreWriteError: If the transaction fails
        """
        return self._transact(collection, [(key, merge_fn)])[0]

    def batch_commit(self, collection: str, writes: Sequence[Write]) -> int:
        """
        Commit several writes as one transaction.

        Each write is (key, value). A mapping value is shallow-merged into
        the existing document; a callable value is a merge function as in
        merge_update. Writes are applied in key order, so concurrent batches
        lock rows in the same order; writes to the same key keep their
        relative order and see each other.

        Returns:
            Number of documents written

        Raises:
            StoreWriteError: If the batch exceeds max_batch_writes or the
                transaction fails. Nothing from the batch is persisted then.
        """
        if len(writes) > self.max_batch_writes:
            raise StoreWriteError(
                f"Batch of {len(writes)} writes exceeds store limit of {self.max_batch_writes}"
            )
        if not writes:
            return 0
        self._transact(collection, writes)
        self.logger.debug(f"Committed batch of {len(writes)} writes to {collection}")
        return len(writes)

    def keys(self, collection: str) -> List[str]:
        """List document keys in a collection, sorted."""
        with self.SessionLocal() as session:
            rows = (
                session.query(DocumentRecord.key)
                .filter_by(collection=collection)
                .order_by(DocumentRecord.key.asc())
                .all()
            )
            return [row.key for row in rows]

    def count(self, collection: str) -> int:
        with self.SessionLocal() as session:
            return (
                session.query(func.count(DocumentRecord.id))
                .filter_by(collection=collection)
                .scalar()
            )

    def _find(self, session: Session, collection: str, key: str, lock: bool = False):
        query = session.query(DocumentRecord).filter_by(collection=collection, key=key)
        if lock:
            query = query.with_for_update()
        return query.one_or_none()

    def _transact(self, collection: str, writes: Sequence[Write], retry_on_conflict: bool = True) -> List[Document]:
        try:
            order = sorted(range(len(writes)), key=lambda i: writes[i][0])
            documents: List[Document] = [None] * len(writes)
            with self._write_lock, self.SessionLocal.begin() as session:
                for i in order:
                    key, value = writes[i]
                    documents[i] = self._apply(session, collection, key, value)
            return documents
        except IntegrityError as e:
            # A concurrent writer created one of the keys first; the retry sees its row
            if retry_on_conflict:
                self.logger.warning(f"Write conflict on {collection}, retrying once: {e.orig}")
                return self._transact(collection, writes, retry_on_conflict=False)
            raise StoreWriteError(f"Write conflict on {collection}: {e}") from e
        except SQLAlchemyError as e:
            self.logger.error(f"Database error writing to {collection}: {e}")
            raise StoreWriteError(f"Failed to write to {collection}: {e}") from e

    def _apply(self, session: Session, collection: str, key: str, value) -> Document:
        row = self._find(session, collection, key, lock=True)
        previous = dict(row.data) if row is not None else None

        if callable(value):
            document = value(previous)
        else:
            document = dict(previous or {})
            document.update(value)

        if row is None:
            session.add(DocumentRecord(collection=collection, key=key, data=document))
        else:
            # Assign a new object so the JSON column is marked dirty
            row.data = document
            row.updated_at = _utcnow()
        session.flush()
        return document
