from __future__ import annotations
import json
import logging
from datetime import date, datetime
from typing import Any, Dict, Optional, Type

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .db import Base
from .scoring import ScoreResult

logger = logging.getLogger("lingolab.exams")


def row_to_dict(row: Any) -> Dict[str, Any]:
	out: Dict[str, Any] = {}
	for column in row.__table__.columns:
		value = getattr(row, column.key)
		if isinstance(value, (datetime, date)):
			value = value.isoformat()
		out[column.name] = value
	return out


def parse_question_data(raw: Any, *, tag: str) -> Dict[str, Any]:
	# Older rows store the answer key as a JSON string
	if isinstance(raw, str):
		try:
			raw = json.loads(raw)
		except json.JSONDecodeError:
			logger.error("[%s] failed to parse question_data", tag)
			raise HTTPException(status_code=500, detail="Invalid question data format")
	if not isinstance(raw, dict):
		logger.error("[%s] question_data is not an object: %r", tag, type(raw))
		raise HTTPException(status_code=500, detail="Invalid question data format")
	return raw


def exam_id_for(db: Session, model: Type[Base], test_id: str) -> Optional[str]:
	row = (
		db.query(model.exam_id)
		.filter(model.test_id == test_id, model.exam_id.isnot(None))
		.first()
	)
	if row is None:
		logger.warning("[exam-lookup] no exam_id found for %s test_id=%s", model.__tablename__, test_id)
		return None
	return row[0]


def upsert_section_score(
	db: Session,
	model: Type[Base],
	*,
	user_id: str,
	test_id: str,
	course: str,
	section: int,
	exam_id: Optional[str],
	answers: Dict[str, Any],
	result: ScoreResult,
) -> Any:
	"""One score row per (user, test, section); resubmissions overwrite it."""
	row = (
		db.query(model)
		.filter(model.user_id == user_id, model.test_id == test_id, model.section == section)
		.first()
	)
	if row is None:
		row = model(user_id=user_id, test_id=test_id, course=course, section=section)
		db.add(row)
	row.score = result.score
	row.total_score = result.total_score
	row.exam_id = exam_id
	row.answers = answers
	row.validation_results = result.results
	row.created_at = datetime.utcnow()
	return row


def latest_section_score(db: Session, model: Type[Base], *, user_id: str, test_id: str, section: int) -> Optional[Dict[str, Any]]:
	row = (
		db.query(model)
		.filter(model.user_id == user_id, model.test_id == test_id, model.section == section)
		.first()
	)
	return row_to_dict(row) if row is not None else None
