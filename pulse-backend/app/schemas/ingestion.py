from datetime import datetime
from typing import Literal

from pydantic import BaseModel

IngestionJobStatus = Literal["pending", "done", "failed"]


class IngestionJobOut(BaseModel):
    id: str
    kind: Literal["customer", "order"]
    status: IngestionJobStatus
    attempt_count: int
    max_attempts: int
    last_error: str | None = None
    result_id: str | None = None
    processed_at: datetime | None = None
    created_at: datetime
