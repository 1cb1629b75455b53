from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from .models import GrammarError

SEVERITY_ORDER = {"critical": 0, "major": 1, "moderate": 2, "minor": 3, "unknown": 4}
RECENT_LIMIT = 20

CATEGORY_COLORS: Dict[str, str] = {
	"ARTICLES": "text-red-600 bg-red-50 border-red-200",
	"VERB_CONJUGATION": "text-blue-600 bg-blue-50 border-blue-200",
	"WORD_ORDER": "text-purple-600 bg-purple-50 border-purple-200",
	"PREPOSITIONS": "text-green-600 bg-green-50 border-green-200",
	"PLURAL_FORMS": "text-orange-600 bg-orange-50 border-orange-200",
	"NOUN_CASES": "text-pink-600 bg-pink-50 border-pink-200",
	"CAPITALIZATION": "text-indigo-600 bg-indigo-50 border-indigo-200",
	"VERB_POSITION": "text-teal-600 bg-teal-50 border-teal-200",
	"PRONOUN_CASES": "text-amber-600 bg-amber-50 border-amber-200",
	"SEPARABLE_VERBS": "text-cyan-600 bg-cyan-50 border-cyan-200",
	"ADJECTIVE_ENDINGS": "text-emerald-600 bg-emerald-50 border-emerald-200",
	"SPELLING": "text-slate-600 bg-slate-50 border-slate-200",
}
DEFAULT_CATEGORY_COLOR = "text-gray-600 bg-gray-50 border-gray-200"

SEVERITY_COLORS: Dict[str, str] = {
	"critical": "text-red-800 bg-red-200",
	"major": "text-red-700 bg-red-100",
	"moderate": "text-orange-700 bg-orange-100",
	"minor": "text-green-700 bg-green-100",
}
DEFAULT_SEVERITY_COLOR = "text-gray-700 bg-gray-100"


def format_category_name(category: str) -> str:
	# ADJECTIVE_ENDINGS -> "Adjective Endings"
	return " ".join(word.capitalize() for word in category.lower().split("_") if word)


def category_color(category: str) -> str:
	return CATEGORY_COLORS.get((category or "").upper(), DEFAULT_CATEGORY_COLOR)


def severity_color(severity: str) -> str:
	return SEVERITY_COLORS.get((severity or "").lower(), DEFAULT_SEVERITY_COLOR)


def _created(row: Dict[str, Any]) -> str:
	value = row.get("created_at")
	if isinstance(value, datetime):
		return value.isoformat()
	return value or ""


def _group(rows: List[Dict[str, Any]], label: str, key_of) -> Dict[str, Dict[str, Any]]:
	groups: Dict[str, Dict[str, Any]] = {}
	for row in rows:
		key = key_of(row)
		group = groups.setdefault(key, {label: key, "count": 0, "errors": []})
		group["count"] += 1
		group["errors"].append(row)
	return groups


def summarize_grammar_errors(rows: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
	"""Aggregate a learner's grammar errors for the dashboard.

	``rows`` are serialized ``grammar_errors`` rows in any order; the summary
	lists them newest first. Groups are sorted by count, except severities,
	which follow ``SEVERITY_ORDER``.
	"""
	errors = sorted(rows, key=_created, reverse=True)
	if not errors:
		return {
			"stats": {
				"totalErrors": 0,
				"byCategoryCount": 0,
				"bySourceCount": 0,
				"bySeverityCount": 0,
				"lastErrorDate": None,
			},
			"recentErrors": [],
			"categoryStats": [],
			"sourceTypeStats": [],
			"severityStats": [],
			"success": True,
		}

	by_category = _group(errors, "category", lambda r: r.get("grammar_category") or "uncategorized")
	by_source = _group(errors, "source_type", lambda r: r.get("source_type") or "unknown")
	by_severity = _group(errors, "severity", lambda r: (r.get("severity") or "unknown").lower())

	category_stats = sorted(by_category.values(), key=lambda g: -g["count"])
	for group in category_stats:
		group["display_name"] = format_category_name(group["category"])
		group["color"] = category_color(group["category"])
	severity_stats = sorted(by_severity.values(), key=lambda g: SEVERITY_ORDER.get(g["severity"], 99))
	for group in severity_stats:
		group["color"] = severity_color(group["severity"])

	return {
		"stats": {
			"totalErrors": len(errors),
			"byCategoryCount": len(by_category),
			"bySourceCount": len(by_source),
			"bySeverityCount": len(by_severity),
			"lastErrorDate": _created(errors[0]) or None,
		},
		"recentErrors": errors[:RECENT_LIMIT],
		"categoryStats": category_stats,
		"sourceTypeStats": sorted(by_source.values(), key=lambda g: -g["count"]),
		"severityStats": severity_stats,
		"success": True,
	}


def record_grammar_errors(
	db: Session,
	user_id: str,
	errors: Iterable[Dict[str, Any]],
	*,
	source_type: str,
	task_id: Optional[str] = None,
) -> int:
	"""Add one ``grammar_errors`` row per correction; the caller commits."""
	count = 0
	for item in errors:
		if not item.get("error"):
			continue
		db.add(GrammarError(
			user_id=user_id,
			error=item["error"],
			correction=item.get("correction"),
			explanation=item.get("explanation"),
			grammar_category=item.get("grammar_category"),
			severity=(item.get("severity") or None),
			source_type=source_type,
			task_id=task_id,
		))
		count += 1
	return count
