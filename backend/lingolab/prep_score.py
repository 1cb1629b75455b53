"""
Exam preparation score.

A 0-100 readiness figure built from five weighted components:

- learning progress (30): lessons, exercise variety, chapter progress
- language skills (30): the four skill scores, listening and speaking
  weighted 3x when looking at ``today``
- practice & tests (20): attempts, recency, improvement
- active learning (10): vocabulary, pronunciation, grammar
- consistency (10): active days, streak, activity today

Components that can overshoot because of the ``today`` multipliers are
scaled back to their maximum rather than truncated, so the relative weight of
the boosted skills is kept.
"""

from __future__ import annotations
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .scoring import round_half_up

TimeRange = Literal["today", "week", "month", "all"]

LEVELS = [
	(80, "Exam Ready", "You're well prepared! Consider taking a full practice exam."),
	(60, "Advanced", "Great progress! Focus on your weaker skills."),
	(40, "Progressing Well", "Keep up the consistency. Try more speaking exercises."),
	(20, "Building Foundation", "Focus on daily practice and completing more lessons."),
]
STARTING_LEVEL = ("Just Starting", "Focus on completing your first lessons")


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SectionAttempts(_CamelModel):
	reading: int = 0
	listening: int = 0
	speaking: int = 0
	writing: int = 0


class PrepScoreData(_CamelModel):
	completed_lessons: int = 0
	total_lessons: int = 0
	exercise_types_completed: List[str] = Field(default_factory=list)
	chapter_progress: float = 0

	# Skill scores are percentages; None means never assessed
	reading: Optional[float] = None
	listening: Optional[float] = None
	speaking: Optional[float] = None
	writing: Optional[float] = None

	test_attempts: SectionAttempts = Field(default_factory=SectionAttempts)
	recent_test_days: float = 999
	average_improvement: float = 0

	vocabulary_mastered: int = 0
	pronunciation_score: Optional[float] = None
	grammar_score: Optional[float] = None

	active_days_last30: int = 0
	current_streak: int = 0
	today_activity: bool = False

	time_range: TimeRange = "all"


class ScoreComponent(_CamelModel):
	name: str
	score: float
	max_score: float
	breakdown: List[str]
	color: str


class PrepScore(_CamelModel):
	total: int
	components: List[ScoreComponent]
	level: str
	recommendation: str


def _pct_points(score: Optional[float], points: float) -> float:
	return (score / 100) * points if score else 0.0


def _learning_progress(data: PrepScoreData) -> ScoreComponent:
	lessons = min(data.completed_lessons / data.total_lessons * 10, 10) if data.total_lessons > 0 else 0.0
	variety = min(len(data.exercise_types_completed) * 1.25, 10)
	chapter = min(data.chapter_progress * 10, 10)
	return ScoreComponent(
		name="Learning Progress",
		score=lessons + variety + chapter,
		max_score=30,
		breakdown=[
			f"Lessons: {lessons:.1f}/10",
			f"Exercise Variety: {variety:.1f}/10",
			f"Chapter Progress: {chapter:.1f}/10",
		],
		color="blue",
	)


def _language_skills(data: PrepScoreData, boost: float) -> ScoreComponent:
	base = 7.5
	reading = _pct_points(data.reading, base)
	writing = _pct_points(data.writing, base)
	listening = _pct_points(data.listening, base) * boost
	speaking = _pct_points(data.speaking, base) * boost
	raw = reading + writing + listening + speaking
	scale = 30 / raw if raw > 30 else 1
	suffix = " (3x)" if boost > 1 else ""
	return ScoreComponent(
		name="Language Skills",
		score=raw * scale,
		max_score=30,
		breakdown=[
			f"Reading: {reading * scale:.1f}",
			f"Writing: {writing * scale:.1f}",
			f"Listening: {listening * scale:.1f}{suffix}",
			f"Speaking: {speaking * scale:.1f}{suffix}",
		],
		color="purple",
	)


def _practice(data: PrepScoreData) -> ScoreComponent:
	attempts = data.test_attempts
	total_tests = attempts.reading + attempts.listening + attempts.speaking + attempts.writing
	test_points = min(total_tests * 0.5, 8)
	recent = 2 if data.recent_test_days < 7 else 0
	improvement = min(data.average_improvement * 0.07, 7)
	# 3 points are always granted for section mastery
	score = min(test_points + recent + improvement + 3, 20)
	return ScoreComponent(
		name="Practice & Tests",
		score=score,
		max_score=20,
		breakdown=[
			f"Test Attempts: {test_points:.1f}/8",
			f"Recent Activity: {recent}/2",
			f"Improvement: {improvement:.1f}/7",
			"Section Mastery: 3/3",
		],
		color="green",
	)


def _active_learning(data: PrepScoreData, boost: float) -> ScoreComponent:
	vocab = min(data.vocabulary_mastered / 50, 4)
	pronunciation = _pct_points(data.pronunciation_score, 3) * boost
	grammar = _pct_points(data.grammar_score, 3)
	raw = vocab + pronunciation + grammar
	scale = 10 / raw if raw > 10 else 1
	return ScoreComponent(
		name="Active Learning",
		score=raw * scale,
		max_score=10,
		breakdown=[
			f"Vocabulary: {vocab * scale:.1f}/4",
			f"Pronunciation: {pronunciation * scale:.1f}{' (3x)' if boost > 1 else ''}",
			f"Grammar: {grammar * scale:.1f}/3",
		],
		color="orange",
	)


def _consistency(data: PrepScoreData) -> ScoreComponent:
	active_days = min(max(data.active_days_last30, 0), 30) / 30 * 3
	streak = min(data.current_streak / 7, 2)
	today = 3 if data.today_activity else 0
	return ScoreComponent(
		name="Consistency",
		score=active_days + streak + today + 2,
		max_score=10,
		breakdown=[
			f"Active Days: {active_days:.1f}/3",
			f"Streak: {streak:.1f}/2",
			f"Today: {today}/3",
			"Distribution: 2/2",
		],
		color="amber",
	)


def level_for(total: int) -> tuple:
	for threshold, level, recommendation in LEVELS:
		if total >= threshold:
			return level, recommendation
	return STARTING_LEVEL


def calculate_prep_score(data: PrepScoreData) -> PrepScore:
	boost = 3.0 if data.time_range == "today" else 1.0
	components = [
		_learning_progress(data),
		_language_skills(data, boost),
		_practice(data),
		_active_learning(data, boost),
		_consistency(data),
	]
	total = round_half_up(sum(c.score for c in components))
	total = max(0, min(100, total))
	level, recommendation = level_for(total)
	return PrepScore(total=total, components=components, level=level, recommendation=recommendation)
