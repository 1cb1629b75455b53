import pytest

from lingolab.prep_score import PrepScoreData, calculate_prep_score, level_for


def _component(result, name):
	return next(c for c in result.components if c.name == name)


def _skill_points(result):
	# "Listening: 12.3 (3x)" -> {"Listening": 12.3}
	points = {}
	for line in _component(result, "Language Skills").breakdown:
		name, value = line.split(": ")
		points[name] = float(value.split()[0])
	return points


def test_empty_profile_gets_base_points_only():
	result = calculate_prep_score(PrepScoreData())
	# 3 base practice points + 2 base consistency points
	assert result.total == 5
	assert result.level == "Just Starting"
	assert _component(result, "Learning Progress").score == 0


def test_zero_total_lessons_does_not_divide_by_zero():
	result = calculate_prep_score(PrepScoreData(completed_lessons=3, total_lessons=0))
	assert _component(result, "Learning Progress").score == 0


def test_maxed_profile_is_clamped_to_100():
	data = PrepScoreData(
		completed_lessons=40,
		total_lessons=40,
		exercise_types_completed=["reading", "listening", "writing", "speaking", "vocabulary", "grammar", "debate", "quiz"],
		chapter_progress=1,
		reading=100,
		listening=100,
		speaking=100,
		writing=100,
		test_attempts={"reading": 10, "listening": 10, "speaking": 10, "writing": 10},
		recent_test_days=1,
		average_improvement=200,
		vocabulary_mastered=1000,
		pronunciation_score=100,
		grammar_score=100,
		active_days_last30=30,
		current_streak=30,
		today_activity=True,
		time_range="today",
	)
	result = calculate_prep_score(data)
	assert result.total == 100
	assert result.level == "Exam Ready"
	assert _component(result, "Language Skills").score == pytest.approx(30)
	assert _component(result, "Active Learning").score == pytest.approx(10)


def test_today_boosts_listening_and_speaking():
	base = dict(reading=40, writing=40, listening=60, speaking=60)
	week = calculate_prep_score(PrepScoreData(time_range="week", **base))
	today = calculate_prep_score(PrepScoreData(time_range="today", **base))
	assert _component(today, "Language Skills").score >= _component(week, "Language Skills").score
	assert today.total > week.total
	assert "(3x)" in _component(today, "Language Skills").breakdown[2]

	week_points = _skill_points(week)
	today_points = _skill_points(today)
	assert week_points["Listening"] == pytest.approx(4.5)
	assert week_points["Speaking"] == pytest.approx(4.5)
	for skill in ("Listening", "Speaking"):
		assert today_points[skill] >= week_points[skill]
	# Normalization to 30 keeps the boosted skills ahead of the others
	assert today_points["Listening"] > today_points["Reading"]


def test_camel_case_payload_is_accepted():
	data = PrepScoreData.model_validate({
		"completedLessons": 5,
		"totalLessons": 10,
		"testAttempts": {"reading": 4},
		"activeDaysLast30": 15,
		"timeRange": "month",
	})
	assert data.completed_lessons == 5
	assert data.test_attempts.reading == 4
	assert data.active_days_last30 == 15


@pytest.mark.parametrize(
	"total,level",
	[(80, "Exam Ready"), (79, "Advanced"), (60, "Advanced"), (45, "Progressing Well"), (20, "Building Foundation"), (19, "Just Starting")],
)
def test_level_bands(total, level):
	assert level_for(total)[0] == level
