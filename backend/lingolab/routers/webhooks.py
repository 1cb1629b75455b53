"""
Auth-provider webhooks.

Assigns roles and class membership when users sign up with a join or invite
code, and mirrors organization roles into the user's public metadata.

Deliveries are retried by the sender until they succeed, so every step here
can run more than once:

- each delivery is recorded in ``webhook_events`` under its svix message id
  and a processed id is acknowledged without side effects;
- the database side of a redemption (membership, usage row, counter) is one
  transaction guarded by a unique usage row, so it applies at most once;
- metadata updates overwrite rather than toggle, and a failure marks the
  event ``failed`` and answers 500 so the next delivery re-drives it.
"""

from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from svix.webhooks import Webhook, WebhookVerificationError

from ..auth_provider import AuthProviderError, ClerkClient, get_auth_provider_factory
from ..db import get_db
from ..models import (
	Invitation,
	InvitationRedemption,
	StudentJoinCode,
	StudentJoinCodeUsage,
	TeacherStudent,
	WebhookEvent,
)
from ..settings import settings

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

logger = logging.getLogger("lingolab.webhooks")

MEMBERSHIP_EVENTS = ("organizationMembership.created", "organizationMembership.updated")


def merge_membership_role(current: Optional[Dict[str, Any]], org_role: str) -> Dict[str, Any]:
	"""Public metadata after an organization role change; never downgrades a role."""
	merged = dict(current or {})
	if org_role == "org:teacher":
		merged["is_teacher"] = True
		if not merged.get("role") or merged.get("role") == "guest":
			merged["role"] = "teacher"
	if org_role == "org:institute_admin":
		merged["is_institute_admin"] = True
		if not merged.get("role") or merged.get("role") in ("teacher", "guest"):
			merged["role"] = "institute_admin"
	return merged


def _is_expired(expires_at: Optional[datetime]) -> bool:
	if expires_at is None:
		return False
	now = datetime.now(expires_at.tzinfo) if expires_at.tzinfo else datetime.utcnow()
	return expires_at < now


def _redeem_join_code(db: Session, code: str, user_id: str) -> Optional[Dict[str, Any]]:
	"""Apply the DB side of a join code and return the metadata to set, if any."""
	row = db.query(StudentJoinCode).filter(StudentJoinCode.code == code).first()
	if row is None or not row.is_active:
		logger.error("[webhook] join code not found or inactive: %s", code)
		return None
	metadata = {
		"is_student": True,
		"role": "student",
		"teacher_id": row.teacher_id,
		"class_id": row.class_id,
	}
	used = (
		db.query(StudentJoinCodeUsage)
		.filter(StudentJoinCodeUsage.join_code_id == row.id, StudentJoinCodeUsage.student_id == user_id)
		.first()
	)
	if used is not None:
		logger.info("[webhook] join code %s already redeemed by %s", code, user_id)
		return metadata
	if _is_expired(row.expires_at):
		logger.error("[webhook] join code expired: %s", code)
		return None
	if row.max_uses and row.current_uses >= row.max_uses:
		logger.error("[webhook] join code max uses reached: %s", code)
		return None

	try:
		db.add(StudentJoinCodeUsage(join_code_id=row.id, student_id=user_id))
		exists = (
			db.query(TeacherStudent)
			.filter(TeacherStudent.teacher_id == row.teacher_id, TeacherStudent.student_id == user_id)
			.first()
		)
		if exists is None:
			db.add(TeacherStudent(
				teacher_id=row.teacher_id,
				student_id=user_id,
				class_id=row.class_id,
				joined_via="join_code",
				status="active",
			))
		db.query(StudentJoinCode).filter(StudentJoinCode.id == row.id).update(
			{StudentJoinCode.current_uses: StudentJoinCode.current_uses + 1, StudentJoinCode.updated_at: datetime.utcnow()},
			synchronize_session=False,
		)
		db.commit()
	except IntegrityError:
		# A concurrent delivery redeemed it first
		db.rollback()
		logger.info("[webhook] join code %s redeemed concurrently for %s", code, user_id)
	logger.info("[webhook] student %s joined teacher %s via %s", user_id, row.teacher_id, code)
	return metadata


def _redeem_invitation(db: Session, code: str, user_id: str) -> Optional[Dict[str, Any]]:
	invitation = db.query(Invitation).filter(Invitation.code == code.upper()).first()
	if invitation is None:
		logger.error("[webhook] invitation not found: %s", code)
		return None
	extra = invitation.meta or {}
	metadata = {
		"role": invitation.role,
		"teacherId": invitation.teacher_id,
		"invitedBy": invitation.teacher_name,
		"className": extra.get("className"),
		"courseName": extra.get("courseName"),
	}
	redeemed = (
		db.query(InvitationRedemption)
		.filter(InvitationRedemption.invitation_id == invitation.id, InvitationRedemption.user_id == user_id)
		.first()
	)
	if redeemed is not None:
		return metadata
	if _is_expired(invitation.expires_at) or (invitation.max_uses and invitation.uses_count >= invitation.max_uses):
		logger.error("[webhook] invitation no longer valid: %s", code)
		return None
	try:
		db.add(InvitationRedemption(invitation_id=invitation.id, user_id=user_id))
		db.query(Invitation).filter(Invitation.id == invitation.id).update(
			{Invitation.uses_count: Invitation.uses_count + 1, Invitation.updated_at: datetime.utcnow()},
			synchronize_session=False,
		)
		db.commit()
	except IntegrityError:
		db.rollback()
	return metadata


async def _handle_user_created(data: Dict[str, Any], db: Session, clerk_factory: Callable[[], ClerkClient]) -> None:
	user_id = data.get("id")
	public = data.get("public_metadata") or {}
	unsafe = data.get("unsafe_metadata") or {}
	if not user_id:
		raise HTTPException(status_code=400, detail="Missing user id")

	updates = []
	join_code = public.get("join_code") or unsafe.get("join_code")
	if join_code:
		metadata = _redeem_join_code(db, join_code, user_id)
		if metadata:
			updates.append(metadata)
	invite_code = unsafe.get("inviteCode")
	if invite_code:
		metadata = _redeem_invitation(db, str(invite_code), user_id)
		if metadata:
			updates.append(metadata)
	if not updates:
		# Roleless users pick a role in the app
		logger.info("[webhook] user %s created without a usable code", user_id)
		return

	clerk = clerk_factory()
	try:
		for metadata in updates:
			await clerk.set_public_metadata(user_id, metadata)
	finally:
		await clerk.aclose()


async def _handle_membership(data: Dict[str, Any], clerk_factory: Callable[[], ClerkClient]) -> None:
	user_id = data.get("user_id") or (data.get("public_user_data") or {}).get("user_id")
	role = data.get("role")
	if not user_id:
		raise HTTPException(status_code=400, detail="Missing user_id")
	if not role:
		raise HTTPException(status_code=400, detail="Missing role")

	clerk = clerk_factory()
	try:
		user = await clerk.get_user(user_id)
		merged = merge_membership_role(user.get("public_metadata"), role)
		await clerk.set_public_metadata(user_id, merged)
	finally:
		await clerk.aclose()
	logger.info("[webhook] %s now has org role %s", user_id, role)


def _mark(db: Session, event: WebhookEvent, status: str, error: Optional[str] = None) -> None:
	event.status = status
	event.error = error
	event.updated_at = datetime.utcnow()
	db.commit()


@router.post("/clerk")
async def clerk_webhook(
	request: Request,
	db: Session = Depends(get_db),
	clerk_factory: Callable[[], ClerkClient] = Depends(get_auth_provider_factory),
):
	svix_id = request.headers.get("svix-id")
	svix_timestamp = request.headers.get("svix-timestamp")
	svix_signature = request.headers.get("svix-signature")
	if not svix_id or not svix_timestamp or not svix_signature:
		raise HTTPException(status_code=400, detail="Missing svix headers")
	if not settings.clerk_webhook_secret:
		logger.error("[webhook] CLERK_WEBHOOK_SECRET not set")
		raise HTTPException(status_code=500, detail="Server configuration error")

	body = await request.body()
	try:
		Webhook(settings.clerk_webhook_secret).verify(
			body,
			{"svix-id": svix_id, "svix-timestamp": svix_timestamp, "svix-signature": svix_signature},
		)
	except WebhookVerificationError as e:
		logger.error("[webhook] signature verification failed: %s", e)
		raise HTTPException(status_code=400, detail="Invalid webhook signature")
	# verify() only returns the payload on svix 1.x
	evt = json.loads(body)

	event_type = evt.get("type") or ""
	data = evt.get("data") or {}
	event = db.get(WebhookEvent, svix_id)
	if event is not None and event.status == "processed":
		logger.info("[webhook] %s (%s) already processed", svix_id, event_type)
		return {"message": "Webhook processed"}
	if event is None:
		event = WebhookEvent(id=svix_id, event_type=event_type, status="received")
		db.add(event)
		db.commit()
	logger.info("[webhook] handling %s (%s)", event_type, svix_id)

	try:
		if event_type == "user.created":
			await _handle_user_created(data, db, clerk_factory)
		elif event_type in MEMBERSHIP_EVENTS:
			await _handle_membership(data, clerk_factory)
	except HTTPException as e:
		db.rollback()
		_mark(db, event, "failed", str(e.detail))
		raise
	except AuthProviderError as e:
		db.rollback()
		logger.error("[webhook] metadata update failed for %s: %s", svix_id, e)
		_mark(db, event, "failed", str(e))
		raise HTTPException(status_code=500, detail={"error": "Failed to update user metadata", "details": str(e)})

	_mark(db, event, "processed")
	return {"message": "Webhook processed"}
