import asyncio
import json
import os
import uuid

from flask import Response, current_app, jsonify, request, stream_with_context
from flask_login import current_user

from . import bp
from ...errors import (
    EmptyFile, EvaluationError, ExtractionEmpty, ExtractionError, FileTooLarge, InvalidFileType,
    MissingJobDescription, MissingJobTitle, UnsupportedFormat, ValidationError,
)
from ...extensions import rq
from ...jobs.evaluate import run_evaluation
from ...services.validator import MIME_TO_EXTENSION
from ...utils.decorators import token_required

# errors caused by the upload itself rather than by the server
INPUT_ERROR_KINDS = {
    cls.kind for cls in (
        ValidationError, EmptyFile, FileTooLarge, InvalidFileType, MissingJobDescription, MissingJobTitle,
        ExtractionError, UnsupportedFormat, ExtractionEmpty,
    )
}

MAX_LONG_POLL_SECONDS = 30


def _services():
    return current_app.extensions["resume_evaluator"]


def _status_code(error_kind):
    return 422 if error_kind in INPUT_ERROR_KINDS else 500


def _file_type(upload):
    """Extension from the filename, else from the declared MIME type."""
    if upload is None:
        return ""
    ext = os.path.splitext(upload.filename or "")[1].lower()
    if ext:
        return ext
    return MIME_TO_EXTENSION.get((upload.mimetype or "").lower(), "")


def _sse(event) -> str:
    return f"event: resume:status\ndata: {json.dumps(event.to_dict())}\n\n"


@bp.errorhandler(EvaluationError)
def handle_evaluation_error(e):
    return jsonify({"success": False, "error": e.message, "errorKind": e.kind}), _status_code(e.kind)


@bp.post("/evaluate")
@token_required
def evaluate():
    upload = request.files.get("file")
    file_bytes = upload.read() if upload else b""
    file_type = _file_type(upload)
    filename = upload.filename if upload else None
    job_description = request.form.get("jobDescription", "")
    job_title = request.form.get("jobName") or request.form.get("jobTitle") or ""
    services = _services()

    if request.args.get("async") in ("1", "true"):
        # reject bad input now; a client that has not subscribed yet would miss upload:failed
        services.validator.validate(file_bytes, file_type, job_description, job_title)
        evaluation_id = str(uuid.uuid4())
        job = rq.enqueue(run_evaluation, evaluation_id, current_user.id, file_bytes, file_type,
                         job_description, job_title, filename,
                         job_id=evaluation_id, job_timeout=current_app.config.get("RQ_JOB_TIMEOUT", 600))
        current_app.logger.info("enqueued resume evaluation %s (job=%s)", evaluation_id, job.id if job else "sync")
        return jsonify({"success": True, "evaluationId": evaluation_id}), 202

    outcome = asyncio.run(services.orchestrator.evaluate_resume(
        file_bytes, file_type, current_user.id, job_description, job_title,
        original_filename=filename,
    ))
    if outcome.success:
        return jsonify(outcome.to_dict()), 200
    return jsonify(outcome.to_dict()), _status_code(outcome.error_kind)


@bp.get("/evaluations/<evaluation_id>")
@token_required
def get_evaluation(evaluation_id):
    found = _services().gateway.lookup_for_user(current_user.id, evaluation_id)
    if found is None:
        if evaluation_id in _services().orchestrator.in_flight():
            return jsonify({"evaluationId": evaluation_id, "status": "in_progress"}), 202
        return jsonify({"success": False, "error": "Evaluation not found"}), 404
    return jsonify(found)


@bp.delete("/evaluations/<evaluation_id>")
@token_required
def cancel_evaluation(evaluation_id):
    if not _services().orchestrator.cancel(evaluation_id, user_id=current_user.id):
        return jsonify({"success": False, "error": "No running evaluation with that id"}), 404
    return jsonify({"success": True, "evaluationId": evaluation_id, "status": "cancelling"}), 202


@bp.get("/status/stream")
@token_required
def status_stream():
    evaluation_id = request.args.get("evaluationId") or None
    heartbeat = current_app.config.get("STATUS_HEARTBEAT_SECONDS", 15)
    sub = _services().broadcaster.subscribe(current_user.id, evaluation_id)

    def generate():
        try:
            yield ": connected\n\n"
            while not sub.closed:
                event = sub.get(timeout=heartbeat)
                if event is None:
                    if sub.closed:
                        break
                    yield ": heartbeat\n\n"
                    continue
                yield _sse(event)
                if evaluation_id and event.terminal:
                    break
        finally:
            sub.close()

    return Response(stream_with_context(generate()), mimetype="text/event-stream",
                    headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})


@bp.post("/status/subscriptions")
@token_required
def create_subscription():
    data = request.get_json(silent=True) or {}
    evaluation_id = data.get("evaluationId") or request.args.get("evaluationId") or None
    sub = _services().broadcaster.subscribe(current_user.id, evaluation_id)
    return jsonify({"subscriptionId": sub.id, "evaluationId": evaluation_id}), 201


@bp.get("/status/subscriptions/<subscription_id>")
@token_required
def poll_subscription(subscription_id):
    sub = _services().broadcaster.get_subscription(subscription_id, current_user.id)
    if sub is None:
        return jsonify({"success": False, "error": "Subscription not found"}), 404
    try:
        wait = min(float(request.args.get("wait", 0)), MAX_LONG_POLL_SECONDS)
    except ValueError:
        wait = 0
    events = sub.drain(wait=max(wait, 0))
    return jsonify({"subscriptionId": sub.id, "events": [e.to_dict() for e in events]})


@bp.delete("/status/subscriptions/<subscription_id>")
@token_required
def delete_subscription(subscription_id):
    sub = _services().broadcaster.get_subscription(subscription_id, current_user.id)
    if sub is None:
        return jsonify({"success": False, "error": "Subscription not found"}), 404
    sub.close()
    return "", 204
