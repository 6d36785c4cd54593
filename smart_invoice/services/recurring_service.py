"""Scheduled duplication of settled recurring jobs."""
from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Dict, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Job, JobFrequency, JobStatus


def _add_month(day: date) -> date:
    year, month = (day.year + 1, 1) if day.month == 12 else (day.year, day.month + 1)
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def next_occurrence(scheduled: date, frequency: Optional[JobFrequency]) -> date:
    """Next scheduled date; jobs without a frequency repeat weekly."""
    if frequency == JobFrequency.MONTHLY:
        return _add_month(scheduled)
    if frequency == JobFrequency.BI_WEEKLY:
        return scheduled + timedelta(days=14)
    return scheduled + timedelta(days=7)


def process_recurring_jobs(run_date: Optional[date] = None) -> Dict[str, object]:
    """Create the next occurrence of every recurring job settled for the previous day."""
    target = (run_date or date.today()) - timedelta(days=1)
    settled = (
        Job.query.filter(
            Job.is_recurring.is_(True),
            Job.status.in_([JobStatus.PAID, JobStatus.COMPLETED]),
            Job.scheduled_date == target,
        )
        .order_by(Job.created_at.asc())
        .all()
    )
    current_app.logger.info("Processing %d recurring jobs scheduled %s", len(settled), target.isoformat())

    created = 0
    skipped = 0
    for job in settled:
        frequency = job.frequency or JobFrequency.WEEKLY
        next_date = next_occurrence(job.scheduled_date, frequency)
        duplicate = Job.scoped_to_company(job.company_id).filter_by(
            client_id=job.client_id,
            title=job.title,
            is_recurring=True,
            scheduled_date=next_date,
        ).first()
        if duplicate is not None:
            skipped += 1
            continue

        db.session.add(
            Job(
                company_id=job.company_id,
                client_id=job.client_id,
                title=job.title,
                description=job.description,
                price=job.price,
                scheduled_date=next_date,
                is_recurring=True,
                frequency=frequency,
                notification_phone=job.notification_phone,
                status=JobStatus.PENDING,
            )
        )
        created += 1

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create recurring jobs for %s", target.isoformat())
        raise

    current_app.logger.info("Created %d recurring jobs (%d already existed)", created, skipped)
    return {
        "date": target.isoformat(),
        "processed": len(settled),
        "created": created,
        "skipped": skipped,
    }
