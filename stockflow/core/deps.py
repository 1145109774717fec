from collections.abc import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from stockflow.db.session import SessionLocal
from stockflow.services.event_notifier import EventNotifier


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_event_notifier(request: Request) -> EventNotifier:
    return request.app.state.event_notifier
