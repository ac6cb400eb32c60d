"""
Task API — Flask blueprint for the N4Y backend service.

Endpoints:
    GET    /health                 — Liveness probe
    GET    /api/tasks              — Full local ledger
    GET    /api/tasks/<task_id>    — One task plus remaining SLA
    POST   /api/tasks/test         — Create a demo task and run it through the pipeline
    GET    /api/test-pinata        — Probe the pinning credential with a tiny upload

The service context (ledger, pipeline, store) is read from
current_app.extensions["n4y"], set by backend_web.create_app().
"""

import logging
from datetime import datetime, timezone
from flask import Blueprint, current_app, request, jsonify

from ipfs_store import SCOPE_REMEDIATION
from task_ledger import sla_remaining_seconds

logger = logging.getLogger(__name__)

tasks_bp = Blueprint('tasks', __name__)

MAX_DESCRIPTION_CHARS = 4000


def _context():
    return current_app.extensions["n4y"]


@tasks_bp.route('/health', methods=['GET'])
def health():
    return jsonify({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})


@tasks_bp.route('/api/tasks', methods=['GET'])
def list_tasks():
    return jsonify(_context().ledger.all())


@tasks_bp.route('/api/tasks/<task_id>', methods=['GET'])
def get_task(task_id):
    task = _context().ledger.get(task_id)
    if not task:
        return jsonify({"error": "Task not found", "message": f"No task with id {task_id}"}), 404
    task["slaRemainingSeconds"] = sla_remaining_seconds(task)
    return jsonify(task)


@tasks_bp.route('/api/tasks/test', methods=['POST'])
def create_test_task():
    """
    Create a task and process it before responding (demo mode).

    Request:
        {"description": "Write a simple smart contract for token transfer"}
    """
    body = request.get_json(silent=True) or {}
    description = body.get('description')

    if not isinstance(description, str) or not description.strip():
        return jsonify({"error": "Description required"}), 400
    if len(description) > MAX_DESCRIPTION_CHARS:
        return jsonify({"error": f"Description too long (max {MAX_DESCRIPTION_CHARS} chars)"}), 400

    ctx = _context()
    # Claimed at creation so the background poller never races this request
    task = ctx.ledger.create(description.strip(), claimed=True)
    ctx.pipeline.process(task["id"], claimed=task)
    return jsonify(ctx.ledger.get(task["id"]))


@tasks_bp.route('/api/test-pinata', methods=['GET'])
def test_pinata():
    store = _context().store
    if not store.configured:
        return jsonify({
            "error": "PINATA_JWT not configured",
            "message": "Add PINATA_JWT to your environment",
        }), 400

    logger.info("testing pinata connection | api=%s", store.api_version)
    probe = store.probe()

    if probe["success"]:
        return jsonify({
            "success": True,
            "message": "Pinata connection working",
            "testCid": probe["testCid"],
            "tokenConfigured": True,
            "baseUrl": probe["baseUrl"],
            "apiVersion": probe["apiVersion"],
        })

    logger.error("pinata test failed | status=%s error=%s", probe["status"], probe["error"])
    return jsonify({
        "success": False,
        "error": probe["error"],
        "message": "Pinata upload test failed",
        "tokenConfigured": True,
        "status": probe["status"],
        "troubleshooting": {
            "issue": "403 NO_SCOPES_FOUND error" if probe["status"] == 403 else "Pinata upload failed",
            "solution": "Enable the upload scope for your key in the Pinata dashboard",
            "steps": SCOPE_REMEDIATION,
        },
    }), 500
