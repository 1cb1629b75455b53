"""
Listening exam router.

Scores submitted TELC A1 listening sections against the answer key stored in
``listening_tests`` and keeps one ``listening_scores`` row per user, test and
section. Resubmitting a section overwrites the previous score.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..attempts import record_task_completion
from ..db import get_db
from ..exam_store import exam_id_for, latest_section_score, parse_question_data, row_to_dict, upsert_section_score
from ..models import ListeningScore, ListeningTest
from ..scoring import LISTENING_SCORERS
from .auth import User, get_current_user

router = APIRouter(prefix="/api/listening", tags=["listening"])

logger = logging.getLogger("lingolab.listening")

COURSE = "telc_a1"


class SectionSubmission(BaseModel):
    test_id: Optional[str] = None
    answers: Optional[Dict[str, Any]] = None


def _scorer_for(section: int):
    scorer = LISTENING_SCORERS.get(section)
    if scorer is None:
        raise HTTPException(status_code=404, detail=f"Unknown listening section: {section}")
    return scorer


@router.post("/section-{section}")
async def submit_section(
    section: int,
    req: SectionSubmission,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    scorer = _scorer_for(section)
    tag = f"listening-s{section}"
    if not req.test_id or req.answers is None:
        raise HTTPException(status_code=400, detail="Missing required fields: test_id or answers")
    logger.info("[%s] submission user=%s test_id=%s answers=%d", tag, user.user_id, req.test_id, len(req.answers))

    test = (
        db.query(ListeningTest)
        .filter(ListeningTest.test_id == req.test_id, ListeningTest.course == COURSE, ListeningTest.section == section)
        .first()
    )
    if test is None:
        logger.error("[%s] test not found: %s", tag, req.test_id)
        raise HTTPException(status_code=404, detail="Test not found or invalid test_id")

    question_data = parse_question_data(test.question_data, tag=tag)
    result = scorer(question_data, req.answers)
    logger.info("[%s] score %d/%d (%d%%)", tag, result.score, result.total_score, result.percentage)

    try:
        row = upsert_section_score(
            db,
            ListeningScore,
            user_id=user.user_id,
            test_id=req.test_id,
            course=COURSE,
            section=section,
            exam_id=exam_id_for(db, ListeningTest, req.test_id),
            answers=req.answers,
            result=result,
        )
        record_task_completion(db, user.user_id, req.test_id, task_type="listening")
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("[%s] error saving score: %s", tag, e)
        raise HTTPException(status_code=500, detail="Failed to save score")

    return {
        "success": True,
        "score": {
            "correct": result.score,
            "total": result.total_score,
            "percentage": result.percentage,
        },
        "results": result.results,
        "saved_data": [row_to_dict(row)],
    }


@router.get("/section-{section}")
async def get_section_score(
    section: int,
    test_id: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _scorer_for(section)
    if not test_id:
        raise HTTPException(status_code=400, detail="Missing test_id")
    return {"data": latest_section_score(db, ListeningScore, user_id=user.user_id, test_id=test_id, section=section)}
