import base64

import pytest

from lingolab.models import PronunciationAudio, ReadingExercise
from lingolab.routers.audio import sanitize_file_stem
from lingolab.settings import settings


def test_word_audio_is_generated_and_cached(client, db, llm, storage, auth_headers):
	res = client.post("/api/generate-word-audio", json={"word": "Brötchen", "language": "german"}, headers=auth_headers)
	assert res.status_code == 200
	assert res.json() == {"audioUrl": storage.url}
	upload = storage.uploads[0]
	assert upload["file_name"].startswith("broetchen_")
	assert upload["metadata"]["word"] == "brötchen"
	assert llm.prompts == ["brötchen"]

	res = client.post("/api/generate-word-audio", json={"word": "BRÖTCHEN", "language": "german"}, headers=auth_headers)
	assert res.json()["audioUrl"] == storage.url
	assert len(storage.uploads) == 1


def test_legacy_file_name_is_upgraded(client, db, auth_headers):
	db.add(PronunciationAudio(word="hallo", file_path="hallo_123.mp3"))
	db.commit()
	res = client.post("/api/generate-word-audio", json={"word": "Hallo", "language": "german"}, headers=auth_headers)
	expected = f"{settings.legacy_audio_base_url}/hallo_123.mp3"
	assert res.json()["audioUrl"] == expected
	db.expire_all()
	assert db.get(PronunciationAudio, "hallo").file_path == expected


def test_upload_failure_falls_back_to_data_url(client, db, llm, storage, auth_headers):
	storage.fail = True
	res = client.post("/api/generate-word-audio", json={"word": "Tschüss", "language": "german"}, headers=auth_headers)
	url = res.json()["audioUrl"]
	assert url.startswith("data:audio/mp3;base64,")
	assert base64.b64decode(url.split(",", 1)[1]) == llm.speech
	assert db.get(PronunciationAudio, "tschüss") is None


def test_tts_failure_is_500(client, llm, auth_headers):
	llm.fail = "quota exceeded"
	res = client.post("/api/generate-word-audio", json={"word": "Haus", "language": "german"}, headers=auth_headers)
	assert res.status_code == 500
	assert res.json()["details"] == "quota exceeded"


def test_word_audio_requires_fields_and_auth(client, auth_headers):
	assert client.post("/api/generate-word-audio", json={"word": "Haus"}, headers=auth_headers).status_code == 400
	assert client.post("/api/generate-word-audio", json={"word": "Haus", "language": "german"}).status_code == 401


def test_whatsapp_token_bypass(client, storage, monkeypatch):
	monkeypatch.setattr(settings, "whatsapp_service_token", "wa-secret")
	body = {"word": "Haus", "language": "german"}
	assert client.post("/api/generate-word-audio", json=body, headers={"X-WhatsApp-Token": "wrong"}).status_code == 401
	# Header sniffing is not trusted
	assert client.post("/api/generate-word-audio", json=body, headers={"User-Agent": "whatsapp"}).status_code == 401
	res = client.post("/api/generate-word-audio", json=body, headers={"X-WhatsApp-Token": "wa-secret"})
	assert res.status_code == 200


def test_passage_audio(client, db, llm, storage, auth_headers):
	db.add(ReadingExercise(task_id="read-1", text_title="Im Park", reading_text="Heute ist es sonnig."))
	db.add(ReadingExercise(task_id="read-empty", text_title="Leer", reading_text="  "))
	db.commit()

	res = client.post("/api/generate-passage-audio", json={"taskId": "read-1"}, headers=auth_headers)
	assert res.json() == {"audioUrl": storage.url}
	assert storage.uploads[0]["metadata"]["type"] == "reading_passage"
	assert storage.uploads[0]["file_name"].startswith("passage_read_1_")
	db.expire_all()
	assert db.get(ReadingExercise, "read-1").audio_url == storage.url

	client.post("/api/generate-passage-audio", json={"taskId": "read-1"}, headers=auth_headers)
	assert len(storage.uploads) == 1

	assert client.post("/api/generate-passage-audio", json={"taskId": "read-empty"}, headers=auth_headers).status_code == 400
	assert client.post("/api/generate-passage-audio", json={"taskId": "nope"}, headers=auth_headers).status_code == 404


def test_passage_upload_failure_warns(client, db, storage, auth_headers):
	db.add(ReadingExercise(task_id="read-2", reading_text="Text."))
	db.commit()
	storage.fail = True
	body = client.post("/api/generate-passage-audio", json={"taskId": "read-2"}, headers=auth_headers).json()
	assert body["audioUrl"].startswith("data:audio/mp3;base64,")
	assert "warning" in body


@pytest.mark.parametrize("word,stem", [("straße", "strasse"), ("über-all", "ueber_all"), ("a b", "a_b")])
def test_sanitize_file_stem(word, stem):
	assert sanitize_file_stem(word) == stem
