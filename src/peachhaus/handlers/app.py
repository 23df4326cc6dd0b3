"""Flask host for the serverless handlers and signed storage downloads."""
import logging

from flask import Flask, Response, jsonify, request, send_file
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from peachhaus import db, storage
from peachhaus.errors import HandlerError, MissingRequiredFields, PeachHausError

# Importing the handler modules registers them.
from peachhaus.handlers import (  # noqa: F401
    calls, documents, finance, marketing, planning, scheduling, voicemail, work_orders,
)
from peachhaus.handlers.registry import HANDLERS

log = logging.getLogger(__name__)

app = Flask(__name__)
_MAX_UPLOAD_MB = 25
app.config["MAX_CONTENT_LENGTH"] = _MAX_UPLOAD_MB * 1024 * 1024

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-api-key",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


@app.after_request
def set_cors_headers(resp):
    for k, v in CORS_HEADERS.items():
        resp.headers.setdefault(k, v)
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    return resp


# ── Errors ───────────────────────────────────────────────────────────────────

@app.errorhandler(RequestEntityTooLarge)
def upload_too_large(_err):
    return jsonify({"error": f"File too large. Max upload size is {_MAX_UPLOAD_MB} MB."}), 413


@app.errorhandler(PeachHausError)
def domain_error(err: PeachHausError):
    body = {"error": str(err)}
    if isinstance(err, HandlerError):
        body.update(err.extra)
    if isinstance(err, MissingRequiredFields):
        body["missing"] = err.missing
    if err.status_code >= 500:
        log.error("%s: %s", type(err).__name__, err)
    return jsonify(body), err.status_code


@app.errorhandler(Exception)
def unexpected_error(err: Exception):
    if isinstance(err, HTTPException):
        return err
    log.exception("Unhandled error in %s", request.path)
    return jsonify({"error": str(err) or type(err).__name__}), 500


# ── Functions ────────────────────────────────────────────────────────────────

@app.route("/functions/<name>", methods=["GET", "POST", "OPTIONS"])
def invoke(name):
    if request.method == "OPTIONS":
        return Response("ok", status=200)
    h = HANDLERS.get(name)
    if h is None:
        return jsonify({"error": f"unknown function: {name}"}), 404
    if request.method not in h.methods:
        return jsonify({"error": f"{request.method} not allowed for {name}"}), 405

    if request.method == "GET":
        body = request.args.to_dict()
    else:
        body = request.get_json(silent=True)
        if body is None:
            body = {}
        elif not isinstance(body, dict):
            return jsonify({"error": "request body must be a JSON object"}), 400

    with db.conn() as c:
        result = h.func(c, body)

    if isinstance(result, Response):
        return result
    if isinstance(result, tuple):
        payload, status = result
        return jsonify(payload), status
    return jsonify(result)


@app.route("/functions")
def list_functions():
    return jsonify(sorted(HANDLERS))


# ── Storage ──────────────────────────────────────────────────────────────────

@app.route("/storage/<token>")
def storage_download(token):
    bucket, key = storage.resolve_signed(token)
    path = storage.local_path(bucket, key)
    if not path.exists():
        return jsonify({"error": "not found"}), 404
    return send_file(path, mimetype=storage.content_type(key), download_name=path.name)
