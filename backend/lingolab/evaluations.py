"""Structured reply schemas for LLM-graded work.

Each model is sent to the hosted model as a JSON schema and used again to
validate the reply, so field descriptions double as grading instructions.
"""

from __future__ import annotations
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class GrammarCorrection(BaseModel):
	error: str = Field(description="The grammatical error made")
	correction: str = Field(description="The correct form")
	explanation: str = Field(description="Brief explanation of the grammar rule")


class DebateEvaluation(BaseModel):
	argumentation_score: float = Field(ge=0, le=10, description="Quality and strength of the arguments presented")
	argumentation_details: str = Field(description="Analysis of argument structure, logic and evidence")
	rebuttal_score: float = Field(ge=0, le=10, description="Effectiveness of countering opposing arguments")
	rebuttal_details: str
	position_defense_score: float = Field(ge=0, le=10, description="Consistency in defending the position")
	position_defense_details: str
	grammar_score: float = Field(ge=0, le=10, description="Grammar accuracy for the learner's level")
	grammar_details: str
	grammar_errors: List[GrammarCorrection] = Field(default_factory=list, description="Grammar errors only, never spelling or capitalization")
	persuasiveness_score: float = Field(ge=0, le=10)
	persuasiveness_details: str
	total_score: float = Field(ge=0, le=50, description="Total score out of 50")
	overall_feedback: str
	strengths: List[str] = Field(default_factory=list)
	areas_for_improvement: List[str] = Field(default_factory=list)
	best_argument: str
	weakest_point: str
	recommendations: str


GrammarCategory = Literal[
	"ARTICLES", "NOUN_CASES", "VERB_CONJUGATION", "VERB_POSITION", "ADJECTIVE_ENDINGS",
	"PRONOUN_CASES", "CAPITALIZATION", "SPELLING", "WORD_ORDER", "PREPOSITIONS",
	"PLURAL_FORMS", "GENDER_AGREEMENT", "SEPARABLE_VERBS", "MODAL_VERBS",
	"SENTENCE_STRUCTURE", "PUNCTUATION",
]


class EssayGrammarError(BaseModel):
	error: str = Field(description="The incorrect text or phrase from the essay")
	correction: str
	grammar_category: GrammarCategory
	severity: Literal["LOW", "MEDIUM", "HIGH"] = Field(description="How serious the error is for A1 communication")
	explanation: str


class CategoryEvaluation(BaseModel):
	score: float
	max_score: float
	comment: str = Field(description="Explanation referencing the assessment criteria")
	examples: Optional[List[str]] = None
	final_comment: str = Field(description="Constructive feedback addressed to the learner")


class ParameterEvaluations(BaseModel):
	task_completion: CategoryEvaluation
	communicative_design: CategoryEvaluation


class ScoreBreakdown(BaseModel):
	content_points: List[float] = Field(description="Score per content point, e.g. [3, 1.5, 0]")
	communicative_design: float = Field(description="1, 0.5 or 0")


class EssayEvaluation(BaseModel):
	overall_evaluation: str
	parameter_evaluations: ParameterEvaluations
	grammar_errors: List[EssayGrammarError] = Field(default_factory=list)
	total_score: float = Field(description="Sum of all category scores")
	max_total_score: float
	score_breakdown: ScoreBreakdown


# Essay severities map onto the dashboard's severity scale
ESSAY_SEVERITY = {"LOW": "minor", "MEDIUM": "moderate", "HIGH": "major"}

DEBATE_MAX_SCORE = 50
ESSAY_MAX_SCORE = 10

ESSAY_SYSTEM_PROMPT = """You are an expert Goethe A1 German examiner. Evaluate the writing response according to the official Goethe-Institut A1 writing criteria and address the student directly as a teacher.

Task Completion (per content point, max 3 points each):
- 3 Points: task fully completed and comprehensible
- 1.5 Points: task partially completed due to linguistic or content deficiencies
- 0 Points: task not completed or incomprehensible

Communicative Design of the Text (max 1 point):
- 1 Point: text format appropriate
- 0.5 Points: atypical or missing phrases, e.g. no greeting
- 0 Points: no text format-specific phrases

The maximum total score is 10 points for a task with 3 content points.

List specific grammar errors with the incorrect text, the correction, a category, a severity and a short explanation.
Focus on communication rather than perfect grammar. Every category object needs score, max_score, comment, examples and final_comment.
Always include score_breakdown (content_points and communicative_design) and total_score as the sum of the category scores.
Write all feedback and explanations in English."""
