"""
Scrape Job Repository answering "is a scrape running / when did one last complete".
"""
from typing import Optional, List
from sqlalchemy import desc

from oceanwatch.models import ScrapeJob, ScrapeJobStatus
from oceanwatch.repositories.base import BaseRepository


class ScrapeJobRepository(BaseRepository[ScrapeJob]):
    """Repository for scrape job records."""

    def __init__(self, db):
        super().__init__(ScrapeJob, db)

    def get_current(self, ocean: Optional[str] = None) -> Optional[ScrapeJob]:
        """Most recently started running job, optionally for one ocean."""
        query = self.query().filter(ScrapeJob.status == ScrapeJobStatus.RUNNING.value)
        if ocean:
            query = query.filter(ScrapeJob.ocean == ocean)
        return query.order_by(desc(ScrapeJob.started_at)).first()

    def get_last_completed(
        self,
        ocean: Optional[str] = None,
        job_type: Optional[str] = None
    ) -> Optional[ScrapeJob]:
        """Most recently finished completed job."""
        query = self.query().filter(ScrapeJob.status == ScrapeJobStatus.COMPLETED.value)
        if ocean:
            query = query.filter(ScrapeJob.ocean == ocean)
        if job_type:
            query = query.filter(ScrapeJob.job_type == job_type)
        return query.order_by(desc(ScrapeJob.ended_at)).first()

    def find_recent(self, ocean: Optional[str] = None, limit: int = 20) -> List[ScrapeJob]:
        query = self.query()
        if ocean:
            query = query.filter(ScrapeJob.ocean == ocean)
        return query.order_by(desc(ScrapeJob.started_at)).limit(limit).all()
