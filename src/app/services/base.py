"""Shared service logic."""

from sqlalchemy.orm import Session


class BaseService:
    """Base service with session injection, scoped to one organization."""

    def __init__(self, session: Session, organization_id: str) -> None:
        self.session = session
        self.organization_id = organization_id
