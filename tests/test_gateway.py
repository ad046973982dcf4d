import io
import json

import pytest

from conftest import FakeBroker, FakeConverter, FakeStore, make_delivery
from mp3converter.app import create_app
from mp3converter.services import AuthServiceError
from mp3converter.storage import Bucket
from mp3converter.worker import ConversionWorker, Disposition

ADMIN = {"username": "alice", "email": "alice@example.com", "admin": True, "sub": 1}
AUTH_HEADER = {"Authorization": "Bearer good-token"}


class FakeAuthClient:
    def __init__(self) -> None:
        self.validate_result = (200, dict(ADMIN))
        self.login_result = (200, "jwt-token")
        self.register_result = (201, {"message": "user created successfully", "token": "jwt"})
        self.unavailable = False
        self.calls = []

    def _maybe_fail(self) -> None:
        if self.unavailable:
            raise AuthServiceError("auth service unavailable")

    def validate(self, authorization):
        self.calls.append(("validate", authorization))
        self._maybe_fail()
        return self.validate_result

    def login(self, email, password):
        self.calls.append(("login", email, password))
        self._maybe_fail()
        return self.login_result

    def register(self, email, password):
        self.calls.append(("register", email, password))
        self._maybe_fail()
        return self.register_result


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def auth() -> FakeAuthClient:
    return FakeAuthClient()


@pytest.fixture
def app(store, broker, auth):
    app = create_app(
        {
            "TESTING": True,
            "BROKER_URL": "memory://",
            "MONGODB_URI": "mongodb://localhost:27017",
            "VIDEO_QUEUE": "video",
            "MP3_QUEUE": "mp3",
            "DOWNLOAD_CHUNK_SIZE": 4,
        }
    )
    app.extensions["object_store"] = store
    app.extensions["broker_client"] = broker
    app.extensions["auth_client"] = auth
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _upload(client, **files):
    data = {name: (io.BytesIO(content), filename) for name, (filename, content) in files.items()}
    return client.post("/upload", data=data, headers=AUTH_HEADER, content_type="multipart/form-data")


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_upload_stores_video_and_publishes_job(client, store, broker) -> None:
    response = _upload(client, file=("clip.mp4", b"video-bytes"))

    assert response.status_code == 200
    video_fid = response.get_json()["video_fid"]
    assert store.get(Bucket.VIDEOS, video_fid).content == b"video-bytes"
    assert broker.bodies("video") == [{"video_fid": video_fid, "mp3_fid": None, "username": "alice"}]


def test_upload_accepts_any_field_name(client, store) -> None:
    response = _upload(client, video=("clip.mp4", b"video-bytes"))

    assert response.status_code == 200
    assert len(store.ids(Bucket.VIDEOS)) == 1


def test_upload_requester_falls_back_to_email_then_unknown(client, auth, broker) -> None:
    auth.validate_result = (200, {"email": "carol@example.com", "admin": True})
    _upload(client, file=("a.mp4", b"a"))
    auth.validate_result = (200, {"admin": True})
    _upload(client, file=("b.mp4", b"b"))

    assert [body["username"] for body in broker.bodies("video")] == ["carol@example.com", "unknown"]


def test_upload_without_files_is_rejected(client, store, broker) -> None:
    response = client.post("/upload", data={}, headers=AUTH_HEADER, content_type="multipart/form-data")

    assert response.status_code == 400
    assert response.get_json()["error"] == "exactly 1 file required"
    assert store.objects == {}
    assert broker.published == []


def test_upload_with_two_files_is_rejected(client, store, broker) -> None:
    response = _upload(client, first=("a.mp4", b"a"), second=("b.mp4", b"b"))

    assert response.status_code == 400
    assert response.get_json()["file_count"] == 2
    assert store.objects == {}
    assert broker.published == []


def test_publish_failure_rolls_back_stored_video(client, store, broker) -> None:
    broker.fail_publish = True

    response = _upload(client, file=("clip.mp4", b"video-bytes"))

    assert response.status_code == 500
    assert store.ids(Bucket.VIDEOS) == []
    assert len(store.deleted) == 1
    assert broker.closed == 1


def test_store_failure_returns_500_without_publishing(client, store, broker) -> None:
    store.fail_put = True

    response = _upload(client, file=("clip.mp4", b"video-bytes"))

    assert response.status_code == 500
    assert "error" in response.get_json()
    assert broker.published == []


@pytest.mark.parametrize(
    "headers, validate_result",
    [
        ({}, (200, ADMIN)),
        (AUTH_HEADER, (401, {"error": "expired"})),
        (AUTH_HEADER, (200, {"username": "bob", "admin": False})),
    ],
)
def test_upload_requires_admin_token(client, auth, store, headers, validate_result) -> None:
    auth.validate_result = validate_result

    response = client.post(
        "/upload",
        data={"file": (io.BytesIO(b"v"), "clip.mp4")},
        headers=headers,
        content_type="multipart/form-data",
    )

    assert response.status_code == 401
    assert response.get_json() == {"error": "not authorized"}
    assert store.objects == {}


def test_unreachable_auth_service_is_unauthorized(client, auth) -> None:
    auth.unavailable = True

    response = client.get("/download?fid=abc", headers=AUTH_HEADER)

    assert response.status_code == 401


def test_download_streams_stored_audio(client, store) -> None:
    fid = store.seed(Bucket.AUDIO, b"0123456789", filename="song.mp3")

    response = client.get(f"/download?fid={fid}", headers=AUTH_HEADER)

    assert response.status_code == 200
    assert response.mimetype == "audio/mpeg"
    assert response.headers["Content-Disposition"] == 'attachment; filename="song.mp3"'
    assert response.headers["Content-Length"] == "10"
    assert response.get_data() == b"0123456789"


def test_download_requires_fid(client) -> None:
    response = client.get("/download", headers=AUTH_HEADER)

    assert response.status_code == 400


@pytest.mark.parametrize("fid", ["not-an-id", "65a1f0c2e4b0a1b2c3d4e5f6"])
def test_download_store_errors_collapse_to_500(client, fid) -> None:
    response = client.get(f"/download?fid={fid}", headers=AUTH_HEADER)

    assert response.status_code == 500
    assert response.get_json() == {"error": "internal server error"}


def test_download_never_reads_video_namespace(client, store) -> None:
    fid = store.seed(Bucket.VIDEOS, b"video")

    response = client.get(f"/download?fid={fid}", headers=AUTH_HEADER)

    assert response.status_code == 500


def test_download_chunk_size_comes_from_validated_settings(app, client, store) -> None:
    fid = store.seed(Bucket.AUDIO, b"0123456789", filename="song.mp3")
    app.config["DOWNLOAD_CHUNK_SIZE"] = 1024

    response = client.get(f"/download?fid={fid}", headers=AUTH_HEADER, buffered=False)

    assert list(response.response) == [b"0123", b"4567", b"89"]
    response.close()


def test_uploaded_video_is_converted_and_downloadable(client, store, broker, queue_settings) -> None:
    response = _upload(client, file=("holiday.mp4", b"video-bytes"))
    assert response.status_code == 200
    video_fid = response.get_json()["video_fid"]
    [(queue, body)] = broker.published
    assert queue == "video"

    worker = ConversionWorker(broker, store, FakeConverter(), queue_settings)
    worker.setup()
    delivery = make_delivery(body)
    assert worker.handle(delivery) is Disposition.ACK
    assert delivery.message.actions == [("ack", None)]

    [completion] = broker.bodies("mp3")
    assert completion["video_fid"] == video_fid
    assert completion["username"] == "alice"
    assert store.exists(Bucket.AUDIO, completion["mp3_fid"])

    download = client.get(f"/download?fid={completion['mp3_fid']}", headers=AUTH_HEADER)

    assert download.status_code == 200
    assert download.headers["Content-Disposition"] == 'attachment; filename="holiday.mp3"'
    assert download.get_data() == b"ID3video-bytes"
    assert download.headers["Content-Length"] == str(len(b"ID3video-bytes"))


def test_login_returns_token_text(client, auth) -> None:
    response = client.post("/login", json={"email": "a@example.com", "password": "pw"})

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "jwt-token"
    assert auth.calls == [("login", "a@example.com", "pw")]


def test_login_errors(client, auth) -> None:
    assert client.post("/login", json={"email": "a@example.com"}).status_code == 401

    auth.login_result = (401, "")
    response = client.post("/login", json={"email": "a@example.com", "password": "bad"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "invalid credentials"}

    auth.unavailable = True
    assert client.post("/login", json={"email": "a@example.com", "password": "pw"}).status_code == 500


def test_register_passes_through(client, auth) -> None:
    response = client.post("/register", json={"email": "a@example.com", "password": "pw"})

    assert response.status_code == 201
    assert json.loads(response.data) == {"message": "user created successfully", "token": "jwt"}


def test_register_errors(client, auth) -> None:
    assert client.post("/register", json={"password": "pw"}).status_code == 400

    auth.register_result = (422, {"error": "email taken"})
    response = client.post("/register", json={"email": "a@example.com", "password": "pw"})
    assert response.status_code == 422
    assert response.get_json() == {"error": "email taken"}

    auth.unavailable = True
    assert client.post("/register", json={"email": "a@example.com", "password": "pw"}).status_code == 500


def test_cors_headers_echo_origin(client) -> None:
    response = client.get("/health", headers={"Origin": "https://ui.example.com"})

    assert response.headers["Access-Control-Allow-Origin"] == "https://ui.example.com"
