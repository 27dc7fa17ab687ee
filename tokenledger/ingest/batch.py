"""
Batched commits.

Buffers writes and flushes them in chunks, one store transaction per chunk.
A failed chunk leaves every earlier chunk committed; a re-run re-merges the
already written keys, which the reconciler makes safe.
"""

from typing import List

from ..database.manager import DocumentStore, Write
from ..utils.exceptions import ConfigurationError, StoreWriteError
from ..utils.logger import get_logger


class BatchCommitter:
    """
    Buffer (key, value) writes and commit them in size-bounded chunks.

    Use as a context manager: a clean exit flushes the remainder, an exit
    caused by an exception discards the unflushed buffer.
    """

    def __init__(self, store: DocumentStore, collection: str, batch_size: int = 450):
        """
        Args:
            store: Document store
            collection: Target collection
            batch_size: Writes per flush; must be strictly below the store's
                per-batch ceiling to leave headroom for its own writes

        Raises:
            ConfigurationError: If batch_size is out of range
        """
        if batch_size <= 0 or batch_size >= store.max_batch_writes:
            raise ConfigurationError(
                f"Batch size {batch_size} must be between 1 and {store.max_batch_writes - 1}"
            )
        self.store = store
        self.collection = collection
        self.batch_size = batch_size
        self.logger = get_logger("ingest.batch")

        self.buffer: List[Write] = []
        self.committed = 0
        self.flushes = 0

    def add(self, key: str, value) -> int:
        """
        Buffer one write, flushing when the buffer is full.

        Returns:
            Number of writes committed by this call (0 if nothing flushed)
        """
        self.buffer.append((key, value))
        if len(self.buffer) >= self.batch_size:
            return self.flush()
        return 0

    def flush(self) -> int:
        """
        Commit the buffer as one transaction.

        Raises:
            StoreWriteError: The chunk was not committed; earlier chunks stand
        """
        if not self.buffer:
            return 0
        chunk = self.buffer
        try:
            written = self.store.batch_commit(self.collection, chunk)
        except StoreWriteError as e:
            self.logger.error(
                f"Flush {self.flushes + 1} of {len(chunk)} writes to {self.collection} failed "
                f"({self.committed} already committed): {e}"
            )
            raise
        self.buffer = []
        self.committed += written
        self.flushes += 1
        self.logger.info(
            f"Flush {self.flushes}: committed {written} to {self.collection} (total {self.committed})"
        )
        return written

    def close(self) -> int:
        """Flush whatever remains below the batch threshold."""
        return self.flush()

    def __enter__(self) -> "BatchCommitter":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.close()
        elif self.buffer:
            self.logger.warning(f"Discarding {len(self.buffer)} unflushed writes after error")
            self.buffer = []
        return False
