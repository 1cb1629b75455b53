import json

import pytest

from lingolab.models import GrammarError, Task, TaskConversationLog, TaskResponse
from lingolab.settings import settings

SERVICE_HEADERS = {"X-WhatsApp-Token": "wa-secret"}


@pytest.fixture
def service_token(monkeypatch):
	monkeypatch.setattr(settings, "whatsapp_service_token", "wa-secret")
	return SERVICE_HEADERS


def _debate_eval(total=38):
	return {
		"argumentation_score": 8,
		"argumentation_details": "Clear reasons.",
		"rebuttal_score": 7,
		"rebuttal_details": "You answered the main point.",
		"position_defense_score": 8,
		"position_defense_details": "Consistent.",
		"grammar_score": 7,
		"grammar_details": "Mostly accurate.",
		"grammar_errors": [{"error": "ich habe gegangen", "correction": "ich bin gegangen", "explanation": "Perfekt mit sein"}],
		"persuasiveness_score": 8,
		"persuasiveness_details": "Convincing.",
		"total_score": total,
		"overall_feedback": "Good debate.",
		"strengths": ["structure"],
		"areas_for_improvement": ["examples"],
		"best_argument": "Safety first.",
		"weakest_point": "No statistics.",
		"recommendations": "Use data.",
	}


def _log(db, conversation_id, turns, payload=None):
	for i, (role, text) in enumerate(turns):
		db.add(TaskConversationLog(
			conversation_id=conversation_id,
			task_id="debate_1",
			user_id="user_1",
			turn_index=i,
			role=role,
			message=text,
			payload=payload or {"language": "German", "level": "A2", "topic": "Tempolimit"},
		))
	db.commit()


def _events(text):
	return [line[len("data: "):] for line in text.splitlines() if line.startswith("data: ")]


def test_roleplay_streams_and_logs_both_turns(client, db, llm, service_token):
	db.add(Task(
		id="story_1",
		task_type="storytelling",
		title="Ein Tag am Meer",
		parameters={"difficulty_level": "A2", "language": "German"},
		content={"instructions": "Use the past tense."},
	))
	db.commit()
	res = client.post("/api/roleplay-partner", json={
		"messages": [{"role": "user", "parts": [{"type": "text", "text": "Es war einmal..."}]}],
		"task_id": "story_1",
		"userId": "user_1",
		"conversation_id": "conv-1",
	}, headers=service_token)
	assert res.status_code == 200
	assert res.headers["x-conversation-id"] == "conv-1"
	assert res.headers["content-type"].startswith("text/event-stream")
	events = _events(res.text)
	assert events[-1] == "[DONE]"
	deltas = [json.loads(e)["delta"] for e in events[:-1]]
	assert "".join(deltas) == "Hallo! Wie geht's?"
	assert "Luna" in llm.systems[0]
	assert "Ein Tag am Meer" in llm.systems[0]
	assert "Use the past tense." in llm.systems[0]

	db.expire_all()
	turns = db.query(TaskConversationLog).order_by(TaskConversationLog.turn_index).all()
	assert [(t.turn_index, t.role) for t in turns] == [(0, "user"), (1, "assistant")]
	assert turns[0].message == "Es war einmal..."
	assert turns[1].message == "Hallo! Wie geht's?"
	assert turns[0].payload["level"] == "A2"


def test_roleplay_validation(client, auth_headers, service_token):
	assert client.post("/api/roleplay-partner", json={"messages": []}, headers=auth_headers).status_code == 400
	res = client.post("/api/roleplay-partner", json={"messages": [{"role": "user", "content": "hi"}]}, headers=service_token)
	assert res.status_code == 400
	assert res.json()["error"] == "User ID is required"


def test_roleplay_requires_session_or_service_token(client, db):
	res = client.post("/api/roleplay-partner", json={"messages": [{"role": "user", "content": "hi"}], "userId": "someone"})
	assert res.status_code == 401
	assert db.query(TaskConversationLog).count() == 0


def test_session_user_wins_over_body_user_id(client, db, auth_headers):
	res = client.post(
		"/api/roleplay-partner",
		json={"messages": [{"role": "user", "content": "Hallo"}], "userId": "someone_else", "conversation_id": "conv-own"},
		headers=auth_headers,
	)
	assert res.status_code == 200
	db.expire_all()
	assert {t.user_id for t in db.query(TaskConversationLog).all()} == {"user_1"}


def test_roleplay_generates_conversation_id(client, auth_headers):
	res = client.post(
		"/api/roleplay-partner",
		json={"messages": [{"role": "user", "content": "Hallo"}]},
		headers=auth_headers,
	)
	assert res.status_code == 200
	conversation_id = res.headers["x-conversation-id"]
	assert conversation_id

	history = client.get("/api/roleplay-partner/history", params={"conversation_id": conversation_id}, headers=auth_headers)
	messages = history.json()["messages"]
	assert [m["role"] for m in messages] == ["user", "assistant"]
	assert messages[0]["content"] == "Hallo"


def test_roleplay_stream_error_is_reported_in_band(client, db, llm, auth_headers):
	llm.fail = "deployment not found"
	res = client.post(
		"/api/roleplay-partner",
		json={"messages": [{"role": "user", "content": "Hallo"}], "conversation_id": "conv-err"},
		headers=auth_headers,
	)
	events = _events(res.text)
	assert json.loads(events[0]) == {"type": "error", "errorText": "deployment not found"}
	assert events[-1] == "[DONE]"
	# An empty reply is not logged as an assistant turn
	db.expire_all()
	turns = db.query(TaskConversationLog).filter(TaskConversationLog.conversation_id == "conv-err").all()
	assert [t.role for t in turns] == ["user"]


def test_debate_evaluation_stores_attempt(client, db, llm, auth_headers):
	_log(db, "deb-1", [("user", "Ein Tempolimit rettet Leben."), ("assistant", "Aber die Freiheit?"), ("user", "Sicherheit ist wichtiger.")])
	llm.objects["DebateEvaluation"] = _debate_eval()
	payload = {"conversation_id": "deb-1", "task_id": "debate_1"}

	res = client.post("/api/debate-evaluation", json=payload, headers=auth_headers)
	assert res.status_code == 200
	body = res.json()
	assert body["success"] is True
	assert body["evaluation"]["total_score"] == 38
	assert body["metadata"] == {
		"conversation_id": "deb-1",
		"message_count": 2,
		"language": "German",
		"level": "A2",
		"debate_topic": "Tempolimit",
	}
	prompt = llm.prompts[0]
	assert "User: Ein Tempolimit rettet Leben." in prompt
	assert "AI Opponent: Aber die Freiheit?" in prompt

	client.post("/api/debate-evaluation", json=payload, headers=auth_headers)
	db.expire_all()
	responses = db.query(TaskResponse).order_by(TaskResponse.attempt_number).all()
	assert [r.attempt_number for r in responses] == [1, 2]
	assert responses[0].max_score == 50
	assert responses[0].meta["debate_topic"] == "Tempolimit"
	errors = db.query(GrammarError).all()
	assert len(errors) == 2
	assert errors[0].source_type == "debate"


def test_debate_evaluation_request_overrides(client, db, llm, auth_headers):
	_log(db, "deb-2", [("user", "Ja.")], payload={})
	llm.objects["DebateEvaluation"] = _debate_eval()
	res = client.post("/api/debate-evaluation", json={"conversation_id": "deb-2", "debate_topic": "Schuluniform", "level": "B1"}, headers=auth_headers)
	meta = res.json()["metadata"]
	assert meta["debate_topic"] == "Schuluniform"
	assert meta["level"] == "B1"
	assert meta["language"] == "English"
	# No task_id means nothing is stored
	assert db.query(TaskResponse).count() == 0


def test_debate_evaluation_errors(client, db, llm, auth_headers):
	assert client.post("/api/debate-evaluation", json={}, headers=auth_headers).status_code == 400

	res = client.post("/api/debate-evaluation", json={"conversation_id": "missing"}, headers=auth_headers)
	assert res.status_code == 404
	assert res.json()["messages_found"] == 0

	_log(db, "deb-3", [("assistant", "Was denkst du?")])
	res = client.post("/api/debate-evaluation", json={"conversation_id": "deb-3"}, headers=auth_headers)
	assert res.status_code == 400
	assert res.json()["error"] == "No user messages found to evaluate"

	_log(db, "deb-4", [("user", "Nein.")])
	llm.fail = "timeout"
	res = client.post("/api/debate-evaluation", json={"conversation_id": "deb-4"}, headers=auth_headers)
	assert res.status_code == 500
	assert res.json() == {"error": "Failed to generate evaluation", "details": "timeout"}


def test_debate_evaluation_rejects_anonymous_writes(client, db, llm):
	_log(db, "deb-5", [("user", "Ja.")])
	llm.objects["DebateEvaluation"] = _debate_eval()
	res = client.post("/api/debate-evaluation", json={"conversation_id": "deb-5", "user_id": "victim", "task_id": "debate_1"})
	assert res.status_code == 401
	assert db.query(TaskResponse).count() == 0
	assert llm.prompts == []


def test_debate_evaluation_for_service_caller_uses_body_user(client, db, llm, service_token):
	_log(db, "deb-6", [("user", "Ja.")])
	llm.objects["DebateEvaluation"] = _debate_eval()
	res = client.post(
		"/api/debate-evaluation",
		json={"conversation_id": "deb-6", "user_id": "learner_7", "task_id": "debate_1"},
		headers=service_token,
	)
	assert res.status_code == 200
	db.expire_all()
	assert db.query(TaskResponse).one().user_id == "learner_7"
