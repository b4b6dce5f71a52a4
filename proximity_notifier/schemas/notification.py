from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Dict, Any, Optional, List

class ComposedNotification(BaseModel):
    title: str
    body: str
    deep_link: str
    data: Dict[str, Any] = Field(default_factory=dict)

class RecipientOutcome(BaseModel):
    user_id: str
    outcome: str
    attempts: int = 0
    error: Optional[str] = None

class MatchingReport(BaseModel):
    event_id: str
    candidates: int = 0
    filtered_out: int = 0
    rejected: Dict[str, int] = Field(default_factory=dict)
    admitted: int = 0
    outcomes: List[RecipientOutcome] = Field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for item in self.outcomes if item.outcome == outcome)

class NotificationAttemptResponse(BaseModel):
    id: UUID
    event_id: str
    user_id: str
    outcome: str
    sent_at: datetime
    attempts: int
    title: Optional[str]
    body: Optional[str]
    deep_link: Optional[str]
    error: Optional[str]
    detail: Dict[str, Any]

    class Config:
        from_attributes = True

class LedgerStatsResponse(BaseModel):
    total_attempts: int
    total_delivered: int
    total_failed: int
    total_skipped_duplicate: int
    by_outcome: Dict[str, int]
