from __future__ import annotations
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..llm_client import AzureOpenAIClient, LLMError, get_llm_factory
from ..models import PronunciationAudio, ReadingExercise
from ..settings import settings
from ..storage import AudioStorage, StorageUploadError, audio_data_url, get_storage_factory
from .auth import User, get_user_or_whatsapp


router = APIRouter(prefix="/api", tags=["audio"])

logger = logging.getLogger("lingolab.audio")

WORD_INSTRUCTIONS = "Pronounce this German word clearly and naturally."
PASSAGE_INSTRUCTIONS = (
	"Read this German text clearly and naturally, with appropriate pacing for language learners. "
	"Use proper pronunciation and intonation."
)

_UMLAUTS = {"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss"}


class WordAudioRequest(BaseModel):
	word: Optional[str] = None
	language: Optional[str] = None


class PassageAudioRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	task_id: Optional[str] = Field(default=None, alias="taskId")
	language: str = "german"


def sanitize_file_stem(text: str) -> str:
	for src, dst in _UMLAUTS.items():
		text = text.replace(src, dst)
	return re.sub(r"[^a-zA-Z0-9]", "_", text)


def resolve_stored_url(path: str) -> str:
	"""Stored audio is either a full URL or a bare file name from the old bucket."""
	if path.startswith("http") or path.startswith("data:"):
		return path
	return f"{settings.legacy_audio_base_url.rstrip('/')}/{path}"


async def _synthesize(llm_factory: Callable[[], AzureOpenAIClient], text: str, instructions: str, tag: str) -> bytes:
	client = None
	try:
		client = llm_factory()
		return await client.synthesize_speech(text, instructions=instructions)
	except LLMError as e:
		logger.error("[%s] speech synthesis failed: %s", tag, e)
		raise HTTPException(status_code=500, detail={"error": "Failed to generate speech", "details": str(e)})
	finally:
		if client is not None:
			await client.aclose()


async def _upload(
	storage_factory: Callable[[], AudioStorage],
	audio: bytes,
	*,
	file_name: str,
	audio_id: str,
	metadata: Dict[str, Any],
	tag: str,
) -> Optional[str]:
	storage = storage_factory()
	try:
		return await storage.upload_audio(audio, file_name=file_name, audio_id=audio_id, metadata=metadata)
	except StorageUploadError as e:
		logger.error("[%s] upload of %s failed (%d bytes): %s", tag, file_name, len(audio), e)
		return None
	finally:
		await storage.aclose()


@router.post("/generate-word-audio")
async def generate_word_audio(
	req: WordAudioRequest,
	user: User = Depends(get_user_or_whatsapp),
	db: Session = Depends(get_db),
	llm_factory: Callable[[], AzureOpenAIClient] = Depends(get_llm_factory),
	storage_factory: Callable[[], AudioStorage] = Depends(get_storage_factory),
):
	if not req.word or not req.language:
		raise HTTPException(status_code=400, detail="Word and language are required")
	word = req.word.lower()

	cached = db.get(PronunciationAudio, word)
	if cached is not None:
		url = resolve_stored_url(cached.file_path)
		if url != cached.file_path:
			cached.file_path = url
			try:
				db.commit()
			except Exception as e:
				db.rollback()
				logger.warning("[word-audio] could not upgrade stored path for %r: %s", word, e)
		return {"audioUrl": url}

	audio = await _synthesize(llm_factory, word, WORD_INSTRUCTIONS, "word-audio")
	stamp = int(time.time() * 1000)
	file_name = f"{sanitize_file_stem(word)}_{stamp}.mp3"
	public_url = await _upload(
		storage_factory,
		audio,
		file_name=file_name,
		audio_id=f"{word}_{stamp}",
		metadata={
			"contentType": "audio/mp3",
			"generated_at": datetime.now(timezone.utc).isoformat(),
			"test_id": "",
			"original_filename": file_name,
			"word": word,
			"language": req.language,
		},
		tag="word-audio",
	)
	if public_url is None:
		return {"audioUrl": audio_data_url(audio)}

	try:
		row = db.get(PronunciationAudio, word)
		if row is None:
			db.add(PronunciationAudio(word=word, file_path=public_url))
		else:
			row.file_path = public_url
		db.commit()
	except Exception as e:
		# The uploaded URL is still usable without the cache row
		db.rollback()
		logger.error("[word-audio] failed to save %r: %s", word, e)
	return {"audioUrl": public_url}


@router.post("/generate-passage-audio")
async def generate_passage_audio(
	req: PassageAudioRequest,
	user: User = Depends(get_user_or_whatsapp),
	db: Session = Depends(get_db),
	llm_factory: Callable[[], AzureOpenAIClient] = Depends(get_llm_factory),
	storage_factory: Callable[[], AudioStorage] = Depends(get_storage_factory),
):
	if not req.task_id:
		raise HTTPException(status_code=400, detail="taskId is required")
	exercise = db.get(ReadingExercise, req.task_id)
	if exercise is None:
		raise HTTPException(status_code=404, detail="Reading exercise not found")

	if exercise.audio_url:
		url = resolve_stored_url(exercise.audio_url)
		if url != exercise.audio_url:
			exercise.audio_url = url
			db.commit()
		return {"audioUrl": url}

	if not (exercise.reading_text or "").strip():
		raise HTTPException(status_code=400, detail="Reading exercise has no text")

	audio = await _synthesize(llm_factory, exercise.reading_text, PASSAGE_INSTRUCTIONS, "passage-audio")
	stamp = int(time.time() * 1000)
	file_name = f"passage_{sanitize_file_stem(req.task_id)}_{stamp}.mp3"
	public_url = await _upload(
		storage_factory,
		audio,
		file_name=file_name,
		audio_id=f"passage_{req.task_id}_{stamp}",
		metadata={
			"contentType": "audio/mp3",
			"generated_at": datetime.now(timezone.utc).isoformat(),
			"task_id": req.task_id,
			"original_filename": file_name,
			"type": "reading_passage",
			"language": req.language,
			"title": exercise.text_title,
		},
		tag="passage-audio",
	)
	if public_url is None:
		logger.warning("[passage-audio] falling back to inline audio for %s", req.task_id)
		return {"audioUrl": audio_data_url(audio), "warning": "Using temporary audio URL due to upload failure"}

	try:
		exercise.audio_url = public_url
		db.commit()
	except Exception as e:
		db.rollback()
		logger.error("[passage-audio] failed to save audio_url for %s: %s", req.task_id, e)
	return {"audioUrl": public_url}
