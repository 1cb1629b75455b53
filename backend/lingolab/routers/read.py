from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..attempts import record_task_completion
from ..db import get_db
from ..exam_store import exam_id_for, latest_section_score, parse_question_data, row_to_dict, upsert_section_score
from ..models import ReadingScore, ReadingTest
from ..scoring import READING_SCORERS
from .auth import User, get_current_user


router = APIRouter(prefix="/api/reading", tags=["reading"])

logger = logging.getLogger("lingolab.reading")

COURSE = "telc_a1"


class SectionSubmission(BaseModel):
    test_id: Optional[str] = None
    answers: Optional[Dict[str, Any]] = None


def _scorer_for(section: int):
    scorer = READING_SCORERS.get(section)
    if scorer is None:
        raise HTTPException(status_code=404, detail=f"Unknown reading section: {section}")
    return scorer


def _answer_key(test: ReadingTest, tag: str) -> Dict[str, Any]:
    # Reviewed answer keys take precedence over the imported ones
    raw = test.revised_question_data if test.revised_question_data else test.question_data
    return parse_question_data(raw, tag=tag)


@router.post("/section-{section}")
async def submit_section(
    section: int,
    req: SectionSubmission,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    scorer = _scorer_for(section)
    tag = f"reading-s{section}"
    if not req.test_id or req.answers is None:
        raise HTTPException(status_code=400, detail="Missing required fields: test_id or answers")

    test = (
        db.query(ReadingTest)
        .filter(ReadingTest.test_id == req.test_id, ReadingTest.course == COURSE, ReadingTest.section == section)
        .first()
    )
    if test is None:
        logger.error("[%s] test not found: %s", tag, req.test_id)
        raise HTTPException(status_code=404, detail="Test not found or invalid test_id")

    result = scorer(_answer_key(test, tag), req.answers)
    logger.info("[%s] user=%s test_id=%s score %d/%d", tag, user.user_id, req.test_id, result.score, result.total_score)

    try:
        row = upsert_section_score(
            db,
            ReadingScore,
            user_id=user.user_id,
            test_id=req.test_id,
            course=COURSE,
            section=section,
            exam_id=exam_id_for(db, ReadingTest, req.test_id),
            answers=req.answers,
            result=result,
        )
        record_task_completion(db, user.user_id, req.test_id, task_type="reading")
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("[%s] error saving score: %s", tag, e)
        raise HTTPException(status_code=500, detail="Failed to save score")

    return {
        "success": True,
        "score": {"correct": result.score, "total": result.total_score, "percentage": result.percentage},
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
    return {"data": latest_section_score(db, ReadingScore, user_id=user.user_id, test_id=test_id, section=section)}
