from datetime import date, datetime, timedelta

from lingolab.models import (
	GrammarError,
	ListeningScore,
	ReadingScore,
	Task,
	TaskCompletion,
	TaskResponse,
	UserVocabulary,
	WritingScore,
)
from lingolab.routers.dashboard import collect_prep_score_data, current_streak

NOW = datetime(2026, 3, 10, 12, 0)


def _seed(db, user_id="user_1", now=NOW):
	db.add_all([
		Task(id="listening_1", task_type="listening"),
		Task(id="reading_1", task_type="reading"),
		ListeningScore(user_id=user_id, test_id="t1", course="A1", section=1, score=6, total_score=10, created_at=now - timedelta(days=2)),
		ReadingScore(user_id=user_id, test_id="t1", course="A1", section=2, score=9, total_score=10, created_at=now - timedelta(days=1)),
		WritingScore(user_id=user_id, task_id="w1", attempt_number=1, score=8.5, max_score=10, created_at=now),
		TaskResponse(task_id="debate_1", user_id=user_id, attempt_number=1, score=40, max_score=50, created_at=now - timedelta(days=5)),
		TaskCompletion(user_id=user_id, task_id="listening_1", task_type="listening", attempts=1, completed_at=now - timedelta(days=1), updated_at=now - timedelta(days=1)),
		UserVocabulary(user_id=user_id, word="Haus", mastery_level=3),
		UserVocabulary(user_id=user_id, word="Baum", mastery_level=5),
		UserVocabulary(user_id=user_id, word="Tisch", mastery_level=1),
		ListeningScore(user_id="someone_else", test_id="t1", course="A1", section=1, score=0, total_score=10, created_at=now),
	])
	db.commit()


def test_collect_prep_score_data(db):
	_seed(db)
	data = collect_prep_score_data(db, "user_1", "all", now=NOW)
	assert (data.listening, data.reading, data.writing, data.speaking) == (60, 90, 85, 80)
	assert data.test_attempts.listening == 1
	assert data.average_improvement == 30
	assert data.recent_test_days == 0
	assert data.completed_lessons == 1
	assert data.total_lessons == 2
	assert data.chapter_progress == 0.5
	assert data.exercise_types_completed == ["listening"]
	assert data.vocabulary_mastered == 2
	assert data.active_days_last30 == 4
	assert data.current_streak == 3
	assert data.today_activity is True


def test_collect_respects_time_range(db):
	_seed(db)
	data = collect_prep_score_data(db, "user_1", "today", now=NOW)
	assert data.writing == 85
	# The window is the last 24 hours, inclusive
	assert data.reading == 90
	assert data.listening is None
	assert data.test_attempts.writing == 1
	assert data.test_attempts.speaking == 0


def test_current_streak():
	today = date(2026, 3, 10)
	assert current_streak(set(), today) == 0
	assert current_streak({today, today - timedelta(days=1)}, today) == 2
	# A streak is still alive until today ends
	assert current_streak({today - timedelta(days=1), today - timedelta(days=2)}, today) == 2
	assert current_streak({today - timedelta(days=2)}, today) == 0


def test_prep_score_from_client_data(client, auth_headers):
	res = client.post("/api/dashboard/prep-score", json={"completedLessons": 5, "totalLessons": 10, "todayActivity": True}, headers=auth_headers)
	assert res.status_code == 200
	body = res.json()
	# 5 lessons + 3 practice base + 3 today + 2 consistency base
	assert body["total"] == 13
	assert body["level"] == "Just Starting"
	assert body["components"][0]["maxScore"] == 30


def test_prep_score_from_store(client, db, auth_headers):
	_seed(db, now=datetime.utcnow())
	res = client.get("/api/dashboard/prep-score", params={"time_range": "week"}, headers=auth_headers)
	assert res.status_code == 200
	body = res.json()
	assert body["data"]["listening"] == 60
	assert body["data"]["testAttempts"]["speaking"] == 1
	assert body["data"]["timeRange"] == "week"
	assert 0 <= body["total"] <= 100
	assert client.get("/api/dashboard/prep-score", params={"time_range": "year"}, headers=auth_headers).status_code == 422


def test_grammar_error_summary(client, db, auth_headers):
	base = datetime(2026, 3, 1)
	db.add_all([
		GrammarError(user_id="user_1", error="ich gehen", grammar_category="VERB_CONJUGATION", severity="major", source_type="writing", created_at=base),
		GrammarError(user_id="user_1", error="der Frau", grammar_category="ARTICLES", severity="minor", source_type="debate", created_at=base + timedelta(days=1)),
		GrammarError(user_id="user_1", error="du bist", grammar_category="VERB_CONJUGATION", severity="critical", source_type="writing", created_at=base + timedelta(days=2)),
		GrammarError(user_id="user_2", error="x", created_at=base),
	])
	db.commit()

	body = client.get("/api/dashboard/grammar-errors", headers=auth_headers).json()
	assert body["success"] is True
	assert body["stats"]["totalErrors"] == 3
	assert body["stats"]["byCategoryCount"] == 2
	assert body["stats"]["lastErrorDate"].startswith("2026-03-03")
	assert body["recentErrors"][0]["error"] == "du bist"
	assert body["categoryStats"][0]["category"] == "VERB_CONJUGATION"
	assert body["categoryStats"][0]["display_name"] == "Verb Conjugation"
	assert [s["severity"] for s in body["severityStats"]] == ["critical", "major", "minor"]


def test_dashboard_requires_auth(client):
	res = client.get("/api/dashboard/grammar-errors")
	assert res.status_code == 401
	assert res.json() == {"error": "Authentication required"}


def test_health_and_me(client, auth_headers):
	assert client.get("/api/health").json()["status"] == "ok"
	assert client.get("/api/auth/me", headers=auth_headers).json() == {"user_id": "user_1", "is_service": False}


def test_improvement_follows_result_order_in_time(db):
	db.add_all([
		ReadingScore(user_id="user_1", test_id="t2", course="A1", section=2, score=2, total_score=10, created_at=NOW - timedelta(days=3)),
		ListeningScore(user_id="user_1", test_id="t2", course="A1", section=1, score=8, total_score=10, created_at=NOW - timedelta(days=1)),
	])
	db.commit()
	data = collect_prep_score_data(db, "user_1", "all", now=NOW)
	assert data.average_improvement == 60
