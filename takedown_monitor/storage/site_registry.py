"""
Site Registry: the authoritative illegal and legal domain lists.

The two lists are kept disjoint. Adding a domain to one list removes it from
the other in the same transaction. Readers take a ``RegistrySnapshot`` per
run; nothing is cached across calls.
"""

import logging
from typing import Iterable, Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from takedown_monitor.features.schema import SiteType
from takedown_monitor.filters.domain_matcher import DomainMatcher, RegistrySnapshot
from takedown_monitor.storage.database import Database, insert_ignore
from takedown_monitor.storage.models import Site
from takedown_monitor.utils.domain_utils import get_apex_domain, normalize_domain

logger = logging.getLogger(__name__)


class SiteRegistry:
    """
    Repository over the ``sites`` table.

    Args:
        db: Database to read and write
    """

    def __init__(self, db: Database):
        self.db = db

    def snapshot(self) -> RegistrySnapshot:
        """Fresh point-in-time copy of both lists."""
        with self.db.session_scope() as session:
            rows = session.execute(select(Site.domain, Site.type)).all()

        illegal = {domain for domain, site_type in rows if site_type == SiteType.ILLEGAL.value}
        legal = {domain for domain, site_type in rows if site_type == SiteType.LEGAL.value}
        return RegistrySnapshot(illegal=frozenset(illegal), legal=frozenset(legal))

    def matcher(self) -> DomainMatcher:
        return DomainMatcher(self.snapshot())

    def list_domains(self, site_type: Optional[SiteType] = None) -> list[str]:
        stmt = select(Site.domain).order_by(Site.domain)
        if site_type is not None:
            stmt = stmt.where(Site.type == SiteType(site_type).value)

        with self.db.session_scope() as session:
            return list(session.scalars(stmt).all())

    def contains(self, domain: str, site_type: SiteType) -> bool:
        with self.db.session_scope() as session:
            return _exists(session, normalize_domain(domain), SiteType(site_type))

    def add(
        self,
        domain: str,
        site_type: Union[SiteType, str],
        apex: bool = False,
        session: Optional[Session] = None,
    ) -> str:
        """
        Register a domain, moving it out of the opposite list if present.

        Args:
            domain: Domain or URL
            site_type: Target list
            apex: Register the apex domain instead of the given host
            session: Join an existing transaction instead of opening one

        Returns:
            The normalized domain that was registered

        Raises:
            ValueError: If the input has no usable domain
        """
        site_type = SiteType(site_type)
        normalized = get_apex_domain(domain) if apex else normalize_domain(domain)
        if not normalized:
            raise ValueError(f"Not a domain: {domain!r}")

        if session is None:
            with self.db.session_scope() as own_session:
                self._add(own_session, normalized, site_type)
        else:
            self._add(session, normalized, site_type)

        logger.info("Registered %s as %s", normalized, site_type.value)
        return normalized

    def _add(self, session: Session, domain: str, site_type: SiteType) -> None:
        session.execute(
            delete(Site).where(Site.domain == domain, Site.type == site_type.opposite.value)
        )
        insert_ignore(session, Site, [{"domain": domain, "type": site_type.value}], ["domain", "type"])

    def remove(self, domain: str, site_type: Optional[SiteType] = None) -> int:
        """
        Remove a domain from one list, or from both when no type is given.

        Returns:
            Number of rows deleted
        """
        stmt = delete(Site).where(Site.domain == normalize_domain(domain))
        if site_type is not None:
            stmt = stmt.where(Site.type == SiteType(site_type).value)

        with self.db.session_scope() as session:
            deleted = session.execute(stmt).rowcount or 0

        if deleted:
            logger.info("Removed %s from registry", normalize_domain(domain))
        return deleted

    def seed(self, domains: Iterable[str], site_type: Union[SiteType, str]) -> int:
        """
        Bulk-register domains (e.g. imported from a list file).

        Returns:
            Number of domains newly added to the list
        """
        site_type = SiteType(site_type)
        normalized = sorted({d for d in map(normalize_domain, domains) if d})
        if not normalized:
            return 0

        with self.db.session_scope() as session:
            session.execute(
                delete(Site).where(Site.domain.in_(normalized), Site.type == site_type.opposite.value)
            )
            added = insert_ignore(
                session,
                Site,
                [{"domain": d, "type": site_type.value} for d in normalized],
                ["domain", "type"],
            )

        logger.info("Imported %d/%d %s domains", added, len(normalized), site_type.value)
        return added


def _exists(session: Session, domain: str, site_type: SiteType) -> bool:
    stmt = select(Site.id).where(Site.domain == domain, Site.type == site_type.value).limit(1)
    return session.execute(stmt).first() is not None
