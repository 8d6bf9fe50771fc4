"""Auto-routing run schemas."""

from datetime import datetime

from pydantic import BaseModel

from txrouter.models.enums import RunStatus


class RunSummary(BaseModel):
    run_id: int
    status: RunStatus
    total: int
    routed: int
    suggested: int
    unresolved: int
    no_match: int
    conflicts: int
    errors: int
    started_at: datetime
    finished_at: datetime | None = None
