from __future__ import annotations
import logging
import uuid
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..attempts import next_attempt_number, record_task_completion
from ..db import get_db
from ..evaluations import ESSAY_MAX_SCORE, ESSAY_SEVERITY, ESSAY_SYSTEM_PROMPT, EssayEvaluation
from ..grammar_stats import record_grammar_errors
from ..llm_client import AzureOpenAIClient, LLMError, get_llm_factory
from ..models import WritingScore, WritingTask
from ..writing_tasks import WritingTaskPayload, parse_writing_task, to_instruction
from .auth import User, get_current_user


router = APIRouter(prefix="/api", tags=["writing"])

logger = logging.getLogger("lingolab.writing")

# Keeps prompts to the model bounded
MAX_RESPONSE_CHARS = 8000


class CreateWritingTaskRequest(BaseModel):
	task_id: Optional[str] = None
	task: WritingTaskPayload


class WritingEvaluationRequest(BaseModel):
	task_id: Optional[str] = None
	learner_response: Optional[str] = None
	test_id: Optional[str] = None


def _task_out(row: WritingTask) -> dict:
	task = parse_writing_task(row.payload)
	return {
		"task_id": row.task_id,
		"kind": row.kind,
		"task": task.model_dump(),
		"instruction": to_instruction(task),
	}


def _essay_prompt(instruction: str, learner_response: str) -> str:
	return f"Question Data: {instruction}\n\nLearner's Response:\n{learner_response}"


@router.post("/writing-tasks")
async def create_writing_task(req: CreateWritingTaskRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	task_id = req.task_id or str(uuid.uuid4())
	row = db.get(WritingTask, task_id)
	if row is None:
		row = WritingTask(task_id=task_id, kind=req.task.kind, payload={})
		db.add(row)
	# The discriminant is written with the payload and never inferred later
	row.kind = req.task.kind
	row.payload = req.task.model_dump()
	db.commit()
	logger.info("[writing] stored %s task %s", row.kind, task_id)
	return _task_out(row)


@router.get("/writing-tasks/{task_id}")
async def get_writing_task(task_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = db.get(WritingTask, task_id)
	if row is None:
		raise HTTPException(status_code=404, detail="Writing task not found")
	return _task_out(row)


@router.post("/writing-evaluations")
async def evaluate_writing(
	req: WritingEvaluationRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	llm_factory: Callable[[], AzureOpenAIClient] = Depends(get_llm_factory),
):
	text = (req.learner_response or "").strip()
	if not req.task_id or not text:
		raise HTTPException(status_code=400, detail="Missing required fields: task_id or learner_response")
	if len(text) > MAX_RESPONSE_CHARS:
		text = text[:MAX_RESPONSE_CHARS]
	row = db.get(WritingTask, req.task_id)
	if row is None:
		raise HTTPException(status_code=404, detail="Writing task not found")
	instruction = to_instruction(parse_writing_task(row.payload))

	client = None
	try:
		client = llm_factory()
		evaluation = await client.generate_object(_essay_prompt(instruction, text), EssayEvaluation, system=ESSAY_SYSTEM_PROMPT)
	except LLMError as e:
		logger.error("[writing-eval] evaluation failed for task %s: %s", req.task_id, e)
		raise HTTPException(status_code=500, detail={"error": "Failed to evaluate writing", "details": str(e)})
	finally:
		if client is not None:
			await client.aclose()

	attempt: Optional[int] = None
	try:
		attempt = next_attempt_number(db, user.user_id, req.task_id)
		db.add(WritingScore(
			user_id=user.user_id,
			task_id=req.task_id,
			test_id=req.test_id,
			attempt_number=attempt,
			score=evaluation.total_score,
			max_score=evaluation.max_total_score or ESSAY_MAX_SCORE,
			learner_response=text,
			evaluation=evaluation.model_dump(),
		))
		errors = []
		for err in evaluation.grammar_errors:
			item = err.model_dump()
			item["severity"] = ESSAY_SEVERITY.get(err.severity, "unknown")
			errors.append(item)
		record_grammar_errors(db, user.user_id, errors, source_type="writing", task_id=req.task_id)
		record_task_completion(db, user.user_id, req.task_id, task_type="writing")
		db.commit()
	except Exception as e:
		db.rollback()
		attempt = None
		logger.error("[writing-eval] failed to store evaluation for task %s: %s", req.task_id, e)

	return {"success": True, "evaluation": evaluation.model_dump(), "attempt_number": attempt}
