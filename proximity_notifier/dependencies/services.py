from fastapi import Request

from proximity_notifier.services.ledger import NotificationLedger
from proximity_notifier.services.matching import MatchingEngine

def get_matching_engine(request: Request) -> MatchingEngine:
    return request.app.state.matching_engine

def get_ledger(request: Request) -> NotificationLedger:
    return request.app.state.matching_engine.ledger
