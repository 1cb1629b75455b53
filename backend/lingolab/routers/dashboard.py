from __future__ import annotations
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import get_db
from ..exam_store import row_to_dict
from ..grammar_stats import summarize_grammar_errors
from ..models import (
	GrammarError,
	ListeningScore,
	ReadingScore,
	Task,
	TaskCompletion,
	TaskConversationLog,
	TaskResponse,
	UserVocabulary,
	WritingScore,
)
from ..prep_score import PrepScoreData, SectionAttempts, TimeRange, calculate_prep_score
from .auth import User, get_current_user


router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

logger = logging.getLogger("lingolab.dashboard")

# Vocabulary at or above this mastery level counts as mastered
MASTERED_LEVEL = 3

WINDOWS: Dict[str, Optional[timedelta]] = {
	"today": timedelta(days=1),
	"week": timedelta(days=7),
	"month": timedelta(days=30),
	"all": None,
}


def _percentages(rows: Iterable, score_attr: str, total_attr: str) -> List[float]:
	out: List[float] = []
	for row in rows:
		total = getattr(row, total_attr) or 0
		if total > 0:
			out.append((getattr(row, score_attr) or 0) / total * 100)
	return out


def _average(values: List[float]) -> Optional[float]:
	return sum(values) / len(values) if values else None


def current_streak(days: Set[date], today: date) -> int:
	"""Consecutive active days ending today, or yesterday when today is still empty."""
	day = today if today in days else today - timedelta(days=1)
	streak = 0
	while day in days:
		streak += 1
		day -= timedelta(days=1)
	return streak


def collect_prep_score_data(db: Session, user_id: str, time_range: str, now: Optional[datetime] = None) -> PrepScoreData:
	now = now or datetime.utcnow()
	window = WINDOWS.get(time_range)
	since = now - window if window else None

	def scores(model):
		q = db.query(model).filter(model.user_id == user_id)
		if since is not None:
			q = q.filter(model.created_at >= since)
		return q.order_by(model.created_at.asc()).all()

	listening = scores(ListeningScore)
	reading = scores(ReadingScore)
	writing = scores(WritingScore)
	speaking = scores(TaskResponse)

	completions = (
		db.query(TaskCompletion)
		.filter(TaskCompletion.user_id == user_id, TaskCompletion.completed_at.isnot(None))
		.all()
	)
	total_lessons = db.query(func.count(Task.id)).scalar() or 0
	exercise_types = sorted({c.task_type for c in completions if c.task_type})

	exams = sorted(listening + reading, key=lambda r: r.created_at)
	exam_pcts = _percentages(exams, "score", "total_score")
	improvement = max(exam_pcts[-1] - exam_pcts[0], 0) if len(exam_pcts) > 1 else 0

	stamps = [r.created_at for r in listening + reading + writing + speaking if r.created_at]
	recent_days = (now - max(stamps)).days if stamps else 999

	activity = set(s.date() for s in stamps)
	activity.update(c.updated_at.date() for c in completions if c.updated_at)
	log_times = (
		db.query(TaskConversationLog.created_at)
		.filter(TaskConversationLog.user_id == user_id, TaskConversationLog.created_at >= now - timedelta(days=30))
		.all()
	)
	activity.update(t[0].date() for t in log_times if t[0])
	today = now.date()
	active_last30 = len([d for d in activity if today - d < timedelta(days=30)])

	mastered = (
		db.query(func.count(UserVocabulary.id))
		.filter(UserVocabulary.user_id == user_id, UserVocabulary.mastery_level >= MASTERED_LEVEL)
		.scalar()
		or 0
	)

	return PrepScoreData(
		completed_lessons=len(completions),
		total_lessons=total_lessons,
		exercise_types_completed=exercise_types,
		chapter_progress=(len(completions) / total_lessons) if total_lessons else 0,
		reading=_average(_percentages(reading, "score", "total_score")),
		listening=_average(_percentages(listening, "score", "total_score")),
		writing=_average(_percentages(writing, "score", "max_score")),
		speaking=_average(_percentages(speaking, "score", "max_score")),
		test_attempts=SectionAttempts(
			reading=len(reading),
			listening=len(listening),
			writing=len(writing),
			speaking=len(speaking),
		),
		recent_test_days=recent_days,
		average_improvement=improvement,
		vocabulary_mastered=mastered,
		active_days_last30=active_last30,
		current_streak=current_streak(activity, today),
		today_activity=today in activity,
		time_range=time_range,
	)


@router.post("/prep-score")
async def prep_score_from_data(data: PrepScoreData, user: User = Depends(get_current_user)):
	return calculate_prep_score(data).model_dump(by_alias=True)


@router.get("/prep-score")
async def prep_score(time_range: TimeRange = "all", user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	data = collect_prep_score_data(db, user.user_id, time_range)
	result = calculate_prep_score(data)
	logger.info("[prep-score] user=%s range=%s total=%d", user.user_id, time_range, result.total)
	return {**result.model_dump(by_alias=True), "data": data.model_dump(by_alias=True)}


@router.get("/grammar-errors")
async def grammar_errors(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	try:
		rows = (
			db.query(GrammarError)
			.filter(GrammarError.user_id == user.user_id)
			.order_by(GrammarError.created_at.desc())
			.all()
		)
	except Exception as e:
		logger.error("[grammar-errors] failed to load errors for %s: %s", user.user_id, e)
		raise HTTPException(status_code=500, detail="Failed to fetch grammar errors")
	return summarize_grammar_errors(row_to_dict(r) for r in rows)
