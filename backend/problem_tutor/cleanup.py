from __future__ import annotations
import logging
from datetime import datetime, timedelta
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .models import ProblemSession, ProblemSubmission

logger = logging.getLogger(__name__)


def purge_expired(db: Session, days: int) -> int:
	"""Delete sessions older than ``days`` together with their submissions."""
	if days <= 0:
		return 0
	threshold = datetime.utcnow() - timedelta(days=days)
	expired = select(ProblemSession.id).where(ProblemSession.created_at < threshold)
	removed = 0
	# Submissions first so no row is left pointing at a deleted session
	res = db.execute(
		delete(ProblemSubmission)
		.where(ProblemSubmission.session_id.in_(expired))
		.execution_options(synchronize_session=False)
	)
	removed += res.rowcount or 0
	res = db.execute(
		delete(ProblemSession)
		.where(ProblemSession.created_at < threshold)
		.execution_options(synchronize_session=False)
	)
	removed += res.rowcount or 0
	db.commit()
	if removed:
		logger.info("Purged %d expired rows (older than %d days)", removed, days)
	return removed
