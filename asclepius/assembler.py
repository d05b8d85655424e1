from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from pydantic import ValidationError

from .errors import StoreError
from .schemas import HistoryItem, PredictionRecord, Verdict
from .store import DocumentStore

log = structlog.get_logger()


def utc_timestamp() -> str:
    """ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ResultAssembler:
    def __init__(self, store: Optional[DocumentStore], collection: str = "predictions",
                 timeout: Optional[float] = None):
        self.store = store
        self.collection = collection
        self.timeout = timeout

    @property
    def persistent(self) -> bool:
        return self.store is not None

    def assemble(self, verdict: Verdict, suggestion: str) -> PredictionRecord:
        return PredictionRecord(
            id=str(uuid.uuid4()),
            result=verdict,
            suggestion=suggestion,
            created_at=utc_timestamp(),
        )

    async def record(self, verdict: Verdict, suggestion: str) -> PredictionRecord:
        """Assemble a record and write it before the response goes out."""
        record = self.assemble(verdict, suggestion)
        if self.store is None:
            return record
        try:
            await asyncio.wait_for(
                self.store.put(self.collection, record.id, record.to_document()),
                self.timeout,
            )
        except Exception as exc:
            log.error("store_write_failed", id=record.id, err=str(exc) or type(exc).__name__)
            raise StoreError("Failed to save the prediction result.") from exc
        log.info("prediction_stored", id=record.id, collection=self.collection)
        return record

    async def history(self) -> List[HistoryItem]:
        """List stored records; documents that are not valid records are skipped."""
        if self.store is None:
            raise StoreError("Prediction history is not available.")
        try:
            docs = await asyncio.wait_for(self.store.get_all(self.collection), self.timeout)
        except Exception as exc:
            log.error("store_read_failed", err=str(exc) or type(exc).__name__)
            raise StoreError() from exc

        items = []
        for doc_id, doc in docs:
            try:
                record = PredictionRecord.model_validate(doc)
            except ValidationError as exc:
                log.warning("store_record_skipped", id=doc_id, errors=exc.error_count())
                continue
            items.append(HistoryItem(id=doc_id, history=record))
        return items
