from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Float, Text, Boolean, JSON, UniqueConstraint
from .db import Base


class Task(Base):
	__tablename__ = "tasks"
	id = Column(String(64), primary_key=True)
	task_type = Column(String(32), nullable=False)
	title = Column(String(256), nullable=True)
	parameters = Column(JSON, nullable=True)
	# Per-type content (instructions, exercise_subtype, ...)
	content = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TaskConversationLog(Base):
	__tablename__ = "task_conversation_logs"
	__table_args__ = (UniqueConstraint("conversation_id", "task_id", "turn_index", name="uq_conversation_turn"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	conversation_id = Column(String(64), nullable=False, index=True)
	task_id = Column(String(64), nullable=False)
	user_id = Column(String(128), nullable=False)
	turn_index = Column(Integer, nullable=False)
	role = Column(String(16), nullable=False)
	message = Column(Text, nullable=False, default="")
	payload = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TaskResponse(Base):
	__tablename__ = "task_responses"
	__table_args__ = (UniqueConstraint("task_id", "user_id", "attempt_number", name="uq_task_response_attempt"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	task_id = Column(String(64), nullable=False, index=True)
	user_id = Column(String(128), nullable=False, index=True)
	attempt_number = Column(Integer, nullable=False)
	payload = Column(JSON, nullable=True)
	score = Column(Float, nullable=True)
	max_score = Column(Float, nullable=True)
	status = Column(String(32), default="submitted", nullable=False)
	# "metadata" is reserved on declarative classes
	meta = Column("metadata", JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TaskCompletion(Base):
	__tablename__ = "task_completions"
	__table_args__ = (UniqueConstraint("user_id", "task_id", name="uq_task_completion"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	task_id = Column(String(64), nullable=False)
	task_type = Column(String(32), nullable=True)
	attempts = Column(Integer, default=0, nullable=False)
	completed_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SequenceCounter(Base):
	__tablename__ = "sequence_counters"
	scope = Column(String(32), primary_key=True)
	key = Column(String(256), primary_key=True)
	value = Column(Integer, nullable=False)


class ListeningTest(Base):
	__tablename__ = "listening_tests"
	id = Column(Integer, primary_key=True, autoincrement=True)
	test_id = Column(String(64), nullable=False, index=True)
	course = Column(String(32), nullable=False)
	section = Column(Integer, nullable=False)
	exam_id = Column(String(64), nullable=True)
	question_data = Column(JSON, nullable=True)


class ReadingTest(Base):
	__tablename__ = "reading_tests"
	id = Column(Integer, primary_key=True, autoincrement=True)
	test_id = Column(String(64), nullable=False, index=True)
	course = Column(String(32), nullable=False)
	section = Column(Integer, nullable=False)
	exam_id = Column(String(64), nullable=True)
	question_data = Column(JSON, nullable=True)
	revised_question_data = Column(JSON, nullable=True)


class ListeningScore(Base):
	__tablename__ = "listening_scores"
	__table_args__ = (UniqueConstraint("user_id", "test_id", "section", name="uq_listening_score"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	test_id = Column(String(64), nullable=False)
	course = Column(String(32), nullable=False)
	section = Column(Integer, nullable=False)
	exam_id = Column(String(64), nullable=True)
	score = Column(Integer, nullable=False)
	total_score = Column(Integer, nullable=False)
	answers = Column(JSON, nullable=True)
	validation_results = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ReadingScore(Base):
	__tablename__ = "reading_scores"
	__table_args__ = (UniqueConstraint("user_id", "test_id", "section", name="uq_reading_score"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	test_id = Column(String(64), nullable=False)
	course = Column(String(32), nullable=False)
	section = Column(Integer, nullable=False)
	exam_id = Column(String(64), nullable=True)
	score = Column(Integer, nullable=False)
	total_score = Column(Integer, nullable=False)
	answers = Column(JSON, nullable=True)
	validation_results = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class WritingTask(Base):
	__tablename__ = "writing_tasks"
	task_id = Column(String(64), primary_key=True)
	# Discriminant of the stored payload: "simple" or "form"
	kind = Column(String(16), nullable=False)
	payload = Column(JSON, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class WritingScore(Base):
	__tablename__ = "writing_scores"
	__table_args__ = (UniqueConstraint("user_id", "task_id", "attempt_number", name="uq_writing_score_attempt"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	task_id = Column(String(64), nullable=False)
	test_id = Column(String(64), nullable=True)
	attempt_number = Column(Integer, nullable=False)
	score = Column(Float, nullable=True)
	max_score = Column(Float, nullable=True)
	learner_response = Column(Text, nullable=True)
	evaluation = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PronunciationAudio(Base):
	__tablename__ = "pronunciation_audio"
	word = Column(String(256), primary_key=True)
	file_path = Column(Text, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ReadingExercise(Base):
	__tablename__ = "reading_exercises"
	task_id = Column(String(64), primary_key=True)
	text_title = Column(String(256), nullable=True)
	reading_text = Column(Text, nullable=True)
	audio_url = Column(Text, nullable=True)


class GrammarError(Base):
	__tablename__ = "grammar_errors"
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	error = Column(Text, nullable=False)
	correction = Column(Text, nullable=True)
	explanation = Column(Text, nullable=True)
	grammar_category = Column(String(64), nullable=True)
	severity = Column(String(16), nullable=True)
	source_type = Column(String(32), nullable=True)
	task_id = Column(String(64), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserVocabulary(Base):
	__tablename__ = "user_vocabulary"
	__table_args__ = (UniqueConstraint("user_id", "word", name="uq_user_word"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	word = Column(String(256), nullable=False)
	mastery_level = Column(Integer, default=0, nullable=False)
	last_reviewed_at = Column(DateTime, nullable=True)


class StudentJoinCode(Base):
	__tablename__ = "student_join_codes"
	id = Column(Integer, primary_key=True, autoincrement=True)
	code = Column(String(64), unique=True, nullable=False)
	teacher_id = Column(String(128), nullable=False)
	class_id = Column(String(64), nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	expires_at = Column(DateTime, nullable=True)
	max_uses = Column(Integer, nullable=True)
	current_uses = Column(Integer, default=0, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class StudentJoinCodeUsage(Base):
	__tablename__ = "student_join_code_usage"
	__table_args__ = (UniqueConstraint("join_code_id", "student_id", name="uq_join_code_student"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	join_code_id = Column(Integer, nullable=False)
	student_id = Column(String(128), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TeacherStudent(Base):
	__tablename__ = "teacher_students"
	__table_args__ = (UniqueConstraint("teacher_id", "student_id", name="uq_teacher_student"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	teacher_id = Column(String(128), nullable=False)
	student_id = Column(String(128), nullable=False)
	class_id = Column(String(64), nullable=True)
	joined_via = Column(String(32), nullable=False, default="join_code")
	status = Column(String(16), nullable=False, default="active")
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Invitation(Base):
	__tablename__ = "invitations"
	id = Column(Integer, primary_key=True, autoincrement=True)
	code = Column(String(64), unique=True, nullable=False)
	role = Column(String(32), nullable=False)
	teacher_id = Column(String(128), nullable=True)
	teacher_name = Column(String(256), nullable=True)
	meta = Column("metadata", JSON, nullable=True)
	expires_at = Column(DateTime, nullable=True)
	max_uses = Column(Integer, nullable=True)
	uses_count = Column(Integer, default=0, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class InvitationRedemption(Base):
	__tablename__ = "invitation_redemptions"
	__table_args__ = (UniqueConstraint("invitation_id", "user_id", name="uq_invitation_user"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	invitation_id = Column(Integer, nullable=False)
	user_id = Column(String(128), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class WebhookEvent(Base):
	__tablename__ = "webhook_events"
	# svix message id
	id = Column(String(128), primary_key=True)
	event_type = Column(String(64), nullable=False)
	status = Column(String(16), nullable=False, default="received")
	error = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
