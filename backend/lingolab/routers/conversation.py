"""
Conversation practice
=====================

Role-play partner chat and debate evaluation.

- POST /api/roleplay-partner: stream the partner's reply as server-sent
  events and log both sides of the exchange to ``task_conversation_logs``
- GET /api/roleplay-partner/history: the logged turns of one conversation
- POST /api/debate-evaluation: grade the learner's side of a logged debate

Turn indexes and attempt numbers come from the atomic counters in
``lingolab.attempts`` so concurrent writers never collide.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..attempts import next_attempt_number, next_turn_index, record_task_completion
from ..db import get_db, get_session_factory
from ..evaluations import DEBATE_MAX_SCORE, DebateEvaluation
from ..grammar_stats import record_grammar_errors
from ..llm_client import AzureOpenAIClient, LLMError, get_llm_factory
from ..models import Task, TaskConversationLog, TaskResponse
from ..prompts import get_system_instruction, persona_for
from .auth import User, get_current_user, get_user_or_whatsapp


router = APIRouter(prefix="/api", tags=["conversation"])

logger = logging.getLogger("lingolab.conversation")

# Conversations started outside a lesson are logged under this task
GENERAL_TASK_ID = "general-roleplay"


# ============================================================================
# REQUEST MODELS
# ============================================================================

class RoleplayRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	messages: List[Dict[str, Any]] = Field(default_factory=list)
	task_id: Optional[str] = None
	user_id: Optional[str] = Field(default=None, alias="userId")
	language: Optional[str] = None
	level: Optional[str] = None
	topic: Optional[str] = None
	conversation_id: Optional[str] = None


class DebateEvaluationRequest(BaseModel):
	conversation_id: Optional[str] = None
	user_id: Optional[str] = None
	task_id: Optional[str] = None
	language: Optional[str] = None
	level: Optional[str] = None
	topic: Optional[str] = None
	debate_topic: Optional[str] = None
	additional_instructions: Optional[str] = None


# ============================================================================
# CONVERSATION LOG
# ============================================================================

def message_text(message: Dict[str, Any]) -> str:
	"""Text of a chat UI message, which carries either ``parts`` or ``content``."""
	parts = message.get("parts")
	if isinstance(parts, list):
		texts = [p.get("text", "") for p in parts if isinstance(p, dict) and p.get("type") == "text"]
		if texts:
			return "".join(texts)
	content = message.get("content")
	return content if isinstance(content, str) else ""


def log_turn(
	db: Session,
	*,
	conversation_id: str,
	task_id: str,
	user_id: str,
	role: str,
	message: str,
	context: Dict[str, Any],
) -> TaskConversationLog:
	turn = TaskConversationLog(
		conversation_id=conversation_id,
		task_id=task_id,
		user_id=user_id,
		turn_index=next_turn_index(db, conversation_id, task_id),
		role=role,
		message=message,
		payload={
			"language": context.get("language") or "English",
			"level": context.get("level") or "A1",
			"topic": context.get("topic") or "General conversation",
		},
	)
	db.add(turn)
	db.commit()
	return turn


def _roleplay_context(db: Session, req: RoleplayRequest, task_id: str) -> Dict[str, Any]:
	context: Dict[str, Any] = {
		"language": req.language or "English",
		"level": req.level or "A1",
		"topic": req.topic or "General conversation",
		"instructions": "",
		"exercise_subtype": None,
	}
	task = db.get(Task, task_id)
	if task is None:
		logger.info("[roleplay] no task row for %s, using defaults", task_id)
		return context
	params = task.parameters or {}
	content = task.content or {}
	context["topic"] = params.get("topic") or task.title or context["topic"]
	context["level"] = params.get("difficulty_level") or context["level"]
	context["language"] = params.get("language") or context["language"]
	context["exercise_subtype"] = content.get("exercise_subtype") or (
		task.task_type if task.task_type in ("debate", "storytelling") else None
	)
	instructions = content.get("instructions")
	if instructions:
		context["instructions"] = instructions if isinstance(instructions, str) else json.dumps(instructions)
	return context


def _sse(event: Dict[str, Any]) -> str:
	return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


# ============================================================================
# ROLE-PLAY PARTNER
# ============================================================================

@router.post("/roleplay-partner")
async def roleplay_partner(
	req: RoleplayRequest,
	user: User = Depends(get_user_or_whatsapp),
	db: Session = Depends(get_db),
	llm_factory: Callable[[], AzureOpenAIClient] = Depends(get_llm_factory),
	session_factory: Callable[[], Session] = Depends(get_session_factory),
):
	if not req.messages:
		raise HTTPException(status_code=400, detail="No messages provided")
	# Only the service caller acts on behalf of a learner named in the body
	user_id = req.user_id if user.is_service else user.user_id
	if not user_id:
		raise HTTPException(status_code=400, detail="User ID is required")

	task_id = req.task_id or GENERAL_TASK_ID
	context = _roleplay_context(db, req, task_id)
	system = get_system_instruction(
		persona_for(context["exercise_subtype"]),
		level=context["level"],
		topic=context["topic"],
		instructions=context["instructions"],
		language=context["language"],
	)
	conversation_id = req.conversation_id or str(uuid.uuid4())

	latest = req.messages[-1]
	if latest.get("role") == "user":
		try:
			log_turn(
				db,
				conversation_id=conversation_id,
				task_id=task_id,
				user_id=user_id,
				role="user",
				message=message_text(latest) or "Message",
				context=context,
			)
		except Exception as e:
			db.rollback()
			logger.error("[roleplay] failed to log user turn for %s: %s", conversation_id, e)

	chat = [
		{"role": m.get("role"), "content": message_text(m)}
		for m in req.messages
		if m.get("role") in ("user", "assistant") and message_text(m)
	]
	try:
		llm = llm_factory()
	except LLMError as e:
		logger.error("[roleplay] model unavailable: %s", e)
		raise HTTPException(status_code=500, detail={"error": "Error processing request", "details": str(e)})

	async def event_stream() -> AsyncIterator[str]:
		reply: List[str] = []
		try:
			async for delta in llm.stream_chat(system, chat):
				reply.append(delta)
				yield _sse({"type": "text-delta", "delta": delta})
		except LLMError as e:
			logger.error("[roleplay] stream failed for %s: %s", conversation_id, e)
			yield _sse({"type": "error", "errorText": str(e)})
		finally:
			await llm.aclose()
		if reply:
			# The request's session is closed once streaming starts
			log_db = session_factory()
			try:
				log_turn(
					log_db,
					conversation_id=conversation_id,
					task_id=task_id,
					user_id=user_id,
					role="assistant",
					message="".join(reply),
					context=context,
				)
			except Exception as e:
				log_db.rollback()
				logger.error("[roleplay] failed to log assistant turn for %s: %s", conversation_id, e)
			finally:
				log_db.close()
		yield "data: [DONE]\n\n"

	return StreamingResponse(
		event_stream(),
		media_type="text/event-stream",
		headers={"X-Conversation-Id": conversation_id, "Cache-Control": "no-cache"},
	)


@router.get("/roleplay-partner/history")
async def roleplay_history(
	conversation_id: Optional[str] = None,
	task_id: Optional[str] = None,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	if not conversation_id:
		raise HTTPException(status_code=400, detail="conversation_id is required")
	q = db.query(TaskConversationLog).filter(
		TaskConversationLog.conversation_id == conversation_id,
		TaskConversationLog.user_id == user.user_id,
	)
	if task_id:
		q = q.filter(TaskConversationLog.task_id == task_id)
	turns = q.order_by(TaskConversationLog.turn_index.asc()).all()
	return {
		"conversation_id": conversation_id,
		"messages": [
			{
				"id": t.id,
				"role": t.role,
				"content": t.message,
				"turn_index": t.turn_index,
				"createdAt": t.created_at.isoformat() if t.created_at else None,
			}
			for t in turns
		],
	}


# ============================================================================
# DEBATE EVALUATION
# ============================================================================

def build_debate_prompt(
	turns: List[TaskConversationLog],
	*,
	language: str,
	level: str,
	topic: str,
	additional_instructions: Optional[str] = None,
) -> str:
	transcript = "\n\n".join(
		f"{'User' if (t.role or '').lower() == 'user' else 'AI Opponent'}: {t.message}" for t in turns
	)
	arguments = "\n".join(t.message for t in turns if (t.role or "").lower() == "user")
	guidelines = f"Additional Guidelines: {additional_instructions}\n" if additional_instructions else ""
	return f"""You are evaluating a {language} debate at {level} level.

DEBATE DETAILS:
Topic: {topic}
{guidelines}
Both participants present their own positions based on the topic.

Evaluate ONLY the user's performance on:
1. Argumentation - quality, logic and evidence
2. Rebuttal - how well they countered opposing arguments
3. Position Defense - consistency in defending their position
4. Grammar - accuracy appropriate for {level} (ignore capitalization and spelling completely)
5. Persuasiveness - overall impact

Address the user directly ("you", "your"). Leave grammar_errors empty when there are no real grammar mistakes.
Be encouraging and constructive, and focus on the strength of the arguments.

FULL DEBATE:
{transcript}

USER ARGUMENTS TO EVALUATE:
{arguments}

Identify the best argument and the weakest point or missed opportunity."""


def _store_debate_result(
	db: Session,
	*,
	user_id: str,
	task_id: str,
	conversation_id: str,
	turns: List[TaskConversationLog],
	evaluation: DebateEvaluation,
	metadata: Dict[str, Any],
) -> None:
	attempt = next_attempt_number(db, user_id, task_id)
	db.add(TaskResponse(
		task_id=task_id,
		user_id=user_id,
		attempt_number=attempt,
		payload={
			"evaluation": evaluation.model_dump(),
			"conversation_id": conversation_id,
			"messages": [{"role": t.role, "message": t.message} for t in turns],
		},
		score=evaluation.total_score,
		max_score=DEBATE_MAX_SCORE,
		status="submitted",
		meta=metadata,
	))
	record_grammar_errors(
		db,
		user_id,
		[e.model_dump() for e in evaluation.grammar_errors],
		source_type="debate",
		task_id=task_id,
	)
	record_task_completion(db, user_id, task_id, task_type="debate")
	db.commit()
	logger.info("[debate-eval] stored attempt %d for user=%s task=%s", attempt, user_id, task_id)


@router.post("/debate-evaluation")
async def evaluate_debate(
	req: DebateEvaluationRequest,
	user: User = Depends(get_user_or_whatsapp),
	db: Session = Depends(get_db),
	llm_factory: Callable[[], AzureOpenAIClient] = Depends(get_llm_factory),
):
	if not req.conversation_id:
		raise HTTPException(status_code=400, detail="conversation_id is required")
	logger.info("[debate-eval] evaluating conversation %s", req.conversation_id)

	turns = (
		db.query(TaskConversationLog)
		.filter(TaskConversationLog.conversation_id == req.conversation_id)
		.order_by(TaskConversationLog.turn_index.asc())
		.all()
	)
	if not turns:
		logger.error("[debate-eval] no messages for conversation %s", req.conversation_id)
		raise HTTPException(
			status_code=404,
			detail={
				"error": "Could not fetch conversation messages",
				"conversation_id": req.conversation_id,
				"messages_found": 0,
			},
		)
	user_turns = [t for t in turns if (t.role or "").lower() == "user"]
	if not user_turns:
		raise HTTPException(status_code=400, detail="No user messages found to evaluate")

	first_payload = turns[0].payload or {}
	language = req.language or first_payload.get("language") or "English"
	level = req.level or first_payload.get("level") or "A1"
	topic = req.debate_topic or req.topic or first_payload.get("topic") or "General debate"
	prompt = build_debate_prompt(
		turns,
		language=language,
		level=level,
		topic=topic,
		additional_instructions=req.additional_instructions,
	)

	llm = None
	try:
		llm = llm_factory()
		evaluation = await llm.generate_object(prompt, DebateEvaluation)
	except LLMError as e:
		logger.error("[debate-eval] evaluation failed for %s: %s", req.conversation_id, e)
		raise HTTPException(status_code=500, detail={"error": "Failed to generate evaluation", "details": str(e)})
	finally:
		if llm is not None:
			await llm.aclose()

	metadata = {
		"conversation_id": req.conversation_id,
		"message_count": len(user_turns),
		"language": language,
		"level": level,
		"debate_topic": topic,
	}
	user_id = req.user_id if user.is_service else user.user_id
	if req.task_id and user_id:
		try:
			_store_debate_result(
				db,
				user_id=user_id,
				task_id=req.task_id,
				conversation_id=req.conversation_id,
				turns=turns,
				evaluation=evaluation,
				metadata=metadata,
			)
		except Exception as e:
			db.rollback()
			logger.error("[debate-eval] failed to store evaluation: %s", e)

	return {"success": True, "evaluation": evaluation.model_dump(), "metadata": metadata}
