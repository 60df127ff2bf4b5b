"""Monitored title list."""

import logging

from sqlalchemy import select

from takedown_monitor.storage.database import Database, insert_ignore
from takedown_monitor.storage.models import Title

logger = logging.getLogger(__name__)


class TitleStore:
    """Titles searched by monitoring runs. Only ``is_current`` titles are searched."""

    def __init__(self, db: Database):
        self.db = db

    def list_current(self) -> list[str]:
        stmt = select(Title.name).where(Title.is_current.is_(True)).order_by(Title.id)
        with self.db.session_scope() as session:
            return list(session.scalars(stmt).all())

    def list_all(self) -> list[dict]:
        with self.db.session_scope() as session:
            return [row.to_dict() for row in session.scalars(select(Title).order_by(Title.id)).all()]

    def add(self, name: str) -> bool:
        """
        Add a title, or re-activate it if it was removed.

        Returns:
            True if the title was not current before
        """
        name = name.strip()
        if not name:
            raise ValueError("Title must not be empty")

        with self.db.session_scope() as session:
            row = session.scalars(select(Title).where(Title.name == name)).first()
            if row is None:
                insert_ignore(session, Title, [{"name": name, "is_current": True}], ["name"])
                changed = True
            else:
                changed = not row.is_current
                row.is_current = True

        if changed:
            logger.info("Now monitoring %r", name)
        return changed

    def remove(self, name: str) -> bool:
        """Stop monitoring a title; its history is kept. Returns False if it was not current."""
        with self.db.session_scope() as session:
            row = session.scalars(select(Title).where(Title.name == name.strip())).first()
            if row is None or not row.is_current:
                return False
            row.is_current = False

        logger.info("Stopped monitoring %r", name)
        return True
