from __future__ import annotations
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .models import SequenceCounter, TaskCompletion

ATTEMPT_SCOPE = "attempt"
TURN_SCOPE = "turn"

TASK_TYPES = [
	"reading", "listening", "writing", "speaking", "pronunciation",
	"vocabulary", "chatbot", "roleplay", "debate", "quiz", "review",
]


def _upsert_insert(db: Session):
	dialect = db.get_bind().dialect.name
	if dialect == "postgresql":
		from sqlalchemy.dialects.postgresql import insert
	elif dialect == "sqlite":
		from sqlalchemy.dialects.sqlite import insert
	else:
		raise NotImplementedError(f"sequence counters are not supported on {dialect}")
	return insert


def next_sequence(db: Session, scope: str, key: str, *, start: int = 1) -> int:
	"""Atomically allocate the next value of the (scope, key) counter.

	A single INSERT .. ON CONFLICT DO UPDATE .. RETURNING statement creates
	the counter at ``start`` or increments it, so two concurrent callers can
	never receive the same value. The row lock is held until the caller's
	transaction ends.
	"""
	insert = _upsert_insert(db)
	stmt = (
		insert(SequenceCounter)
		.values(scope=scope, key=key, value=start)
		.on_conflict_do_update(
			index_elements=[SequenceCounter.scope, SequenceCounter.key],
			set_={"value": SequenceCounter.value + 1},
		)
		.returning(SequenceCounter.value)
	)
	return int(db.execute(stmt).scalar_one())


def next_attempt_number(db: Session, user_id: str, task_id: str) -> int:
	return next_sequence(db, ATTEMPT_SCOPE, f"{user_id}:{task_id}", start=1)


def next_turn_index(db: Session, conversation_id: str, task_id: str) -> int:
	return next_sequence(db, TURN_SCOPE, f"{conversation_id}:{task_id}", start=0)


def task_type_from_id(task_id: str) -> str:
	last = task_id.split("_")[-1]
	for kind in TASK_TYPES:
		if kind in last or kind in task_id:
			return kind
	return "default"


def record_task_completion(db: Session, user_id: str, task_id: str, *, task_type: Optional[str] = None) -> TaskCompletion:
	# Any attempt completes a task; later attempts only bump the counter
	now = datetime.utcnow()
	row = db.query(TaskCompletion).filter(TaskCompletion.user_id == user_id, TaskCompletion.task_id == task_id).first()
	if row is None:
		row = TaskCompletion(
			user_id=user_id,
			task_id=task_id,
			task_type=task_type or task_type_from_id(task_id),
			attempts=0,
		)
		db.add(row)
	row.attempts = (row.attempts or 0) + 1
	if row.completed_at is None:
		row.completed_at = now
	row.updated_at = now
	return row
