"""HTTP routes exposed by the gateway."""
from __future__ import annotations

from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Mapping

from flask import Blueprint, Response, current_app, jsonify, request

from ..exceptions import BrokerError, PipelineError, StoreError
from ..logging_config import current_log_file
from ..services import (
    AuthServiceError,
    current_token_data,
    get_auth_client,
    get_media_service,
    requester_from,
    require_token,
)

api_bp = Blueprint("gateway_api", __name__)


def _credentials() -> tuple[str, str]:
    payload: Mapping[str, Any] = request.get_json(silent=True) or request.form
    email = payload.get("email") or ""
    password = payload.get("password") or ""
    return str(email), str(password)


@api_bp.route("/health", methods=["GET"])
def health_endpoint():
    now = datetime.now(timezone.utc)
    log_path = current_log_file()
    payload = {
        "status": "ok",
        "service": "gateway",
        "timestamp": now.isoformat(),
        "log_file": str(log_path) if log_path else None,
        "queues": {
            "video": current_app.config.get("VIDEO_QUEUE"),
            "mp3": current_app.config.get("MP3_QUEUE"),
        },
    }
    return jsonify(payload), HTTPStatus.OK


@api_bp.route("/login", methods=["POST"])
def login_endpoint():
    email, password = _credentials()
    if not email or not password:
        return jsonify({"error": "missing credentials"}), HTTPStatus.UNAUTHORIZED
    try:
        status, token = get_auth_client(current_app).login(email, password)
    except AuthServiceError:
        return jsonify({"error": "auth service unavailable"}), HTTPStatus.INTERNAL_SERVER_ERROR
    if not 200 <= status < 300:
        return jsonify({"error": "invalid credentials"}), status
    return Response(token, status=HTTPStatus.OK, mimetype="text/plain")


@api_bp.route("/register", methods=["POST"])
def register_endpoint():
    email, password = _credentials()
    if not email or not password:
        return jsonify({"error": "email and password are required"}), HTTPStatus.BAD_REQUEST
    try:
        status, payload = get_auth_client(current_app).register(email, password)
    except AuthServiceError:
        return jsonify({"error": "auth service unavailable"}), HTTPStatus.INTERNAL_SERVER_ERROR
    body = payload or {}
    if not 200 <= status < 300:
        return jsonify({"error": body.get("error") or "registration failed"}), status
    return (
        jsonify(
            {
                "message": body.get("message") or "user created successfully",
                "token": body.get("token"),
            }
        ),
        HTTPStatus.CREATED,
    )


@api_bp.route("/upload", methods=["POST"])
@require_token(admin=True)
def upload_endpoint():
    fields = list(request.files.keys())
    uploads = [upload for field in fields for upload in request.files.getlist(field)]
    if len(uploads) != 1:
        return (
            jsonify(
                {
                    "error": "exactly 1 file required",
                    "files_received": fields,
                    "file_count": len(uploads),
                }
            ),
            HTTPStatus.BAD_REQUEST,
        )
    upload = request.files.get("file") or uploads[0]
    requester = requester_from(current_token_data())
    service = get_media_service(current_app)
    try:
        video_fid = service.submit_video(upload.filename or "video", upload.stream, requester)
    except StoreError as exc:
        current_app.logger.error("Error uploading to GridFS: %s", exc)
        return jsonify({"error": "internal server error. Error Uploading to GridFS"}), HTTPStatus.INTERNAL_SERVER_ERROR
    except BrokerError as exc:
        current_app.logger.error("Error queueing video: %s", exc)
        return jsonify({"error": "internal server error. Error queueing video"}), HTTPStatus.INTERNAL_SERVER_ERROR
    return (
        jsonify({"message": "success! Video uploaded and queued for conversion.", "video_fid": video_fid}),
        HTTPStatus.OK,
    )


@api_bp.route("/download", methods=["GET"])
@require_token(admin=True)
def download_endpoint():
    fid = request.args.get("fid")
    if not fid:
        return jsonify({"error": "fid is required"}), HTTPStatus.BAD_REQUEST
    service = get_media_service(current_app)
    try:
        stream = service.open_audio(fid)
    except PipelineError as exc:
        # Missing and malformed ids are reported like any other store failure.
        current_app.logger.error("Error opening MP3 %s: %s", fid, exc)
        return jsonify({"error": "internal server error"}), HTTPStatus.INTERNAL_SERVER_ERROR

    response = Response(
        stream.iter_chunks(service.chunk_size),
        status=HTTPStatus.OK,
        mimetype="audio/mpeg",
        direct_passthrough=True,
    )
    response.headers["Content-Disposition"] = f'attachment; filename="{stream.filename}"'
    if stream.length is not None:
        response.headers["Content-Length"] = str(stream.length)
    response.call_on_close(stream.close)
    return response


__all__ = ["api_bp"]
