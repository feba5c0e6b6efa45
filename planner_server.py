#!/usr/bin/env python3
"""
Project Planner Server
----------------------
JSON API over the planner services (boards, tasks, projects, users).

Usage:
    python planner_server.py --port 3000 --db ./planner.db

    # Or via the installed entry point
    planner-server --config planner.yaml

Auth:
    POST /api/auth/register or /api/auth/login returns a session token.
    Mutating calls send it in the X-Session-Token header (configurable).

API:
    GET    /api/projects                               → projects visible to the caller
    POST   /api/projects                               → { name }
    POST   /api/projects/join                          → { inviteCode }
    GET    /api/projects/<pid>/members
    PUT    /api/projects/<pid>/members/<uid>           → { role }
    GET    /api/projects/<pid>/board
    POST   /api/projects/<pid>/tasks                   → { columnId, title, ... }
    PUT    /api/projects/<pid>/tasks/<tid>             → full task
    DELETE /api/projects/<pid>/tasks/<tid>
    POST   /api/projects/<pid>/tasks/<tid>/move        → { sourceColumnId, destColumnId, destIndex }
    POST   /api/projects/<pid>/tasks/<tid>/comments    → { text }
    POST   /api/projects/<pid>/tasks/<tid>/subtasks    → { title }
    PATCH  /api/projects/<pid>/tasks/<tid>/subtasks/<sid>
    DELETE /api/projects/<pid>/tasks/<tid>/subtasks/<sid>
    POST   /api/projects/<pid>/tasks/<tid>/attachments → { name, type, data }
    DELETE /api/projects/<pid>/tasks/<tid>/attachments/<aid>
"""

import argparse
import logging
import sys
from functools import wraps
from pathlib import Path
from typing import Optional

from flask import Flask, current_app, g, jsonify, request

from pkg.planner.board import BoardService, task_from_payload
from pkg.planner.config import Config, build_store
from pkg.planner.errors import Forbidden, PlannerError, ValidationError
from pkg.planner.registry import ProjectRegistry
from pkg.planner.store import PlannerStore
from pkg.planner.users import UserDirectory

logger = logging.getLogger("planner")


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(config: Optional[Config] = None, store: Optional[PlannerStore] = None) -> Flask:
    config = config or Config.load()
    store = store or build_store(config)
    users = UserDirectory(store)

    app = Flask(__name__)
    app.extensions["planner"] = {
        "config": config,
        "users": users,
        "boards": BoardService(store, users),
        "registry": ProjectRegistry(store, users),
    }
    app.register_error_handler(PlannerError, handle_planner_error)
    register_routes(app)
    return app


def _svc(name: str):
    return current_app.extensions["planner"][name]


def _body() -> dict:
    data = request.get_json(force=True, silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def handle_planner_error(e: PlannerError):
    logger.warning(f"{request.method} {request.path} failed: {e.__class__.__name__}: {e.message}")
    return jsonify(e.to_dict()), e.status_code


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_session(f):
    """Decorator: resolve the session token header to g.user_id or fail 401."""
    @wraps(f)
    def decorated(*args, **kwargs):
        header = _svc("config").session_header
        token = request.headers.get(header, "").strip()
        g.user_id = _svc("users").resolve_actor(token)
        return f(*args, **kwargs)
    return decorated


# ── Routes ───────────────────────────────────────────────────────────────────

def register_routes(app: Flask) -> None:

    @app.route("/health")
    def health():
        cfg = _svc("config")
        return jsonify({"status": "ok", "backend": cfg.backend})

    # Users and sessions

    @app.route("/api/auth/register", methods=["POST"])
    def api_register():
        data = _body()
        user, token = _svc("users").register(data.get("name", ""), data.get("email", ""))
        return jsonify({"user": user.to_dict(), "token": token}), 201

    @app.route("/api/auth/login", methods=["POST"])
    def api_login():
        user, token = _svc("users").login(_body().get("email", ""))
        return jsonify({"user": user.to_dict(), "token": token})

    @app.route("/api/auth/logout", methods=["POST"])
    def api_logout():
        header = _svc("config").session_header
        _svc("users").logout(request.headers.get(header, "").strip())
        return jsonify({"ok": True})

    @app.route("/api/users")
    @require_session
    def api_users():
        return jsonify({"users": [u.to_dict() for u in _svc("users").get_all_users()]})

    @app.route("/api/users/<user_id>", methods=["PATCH"])
    @require_session
    def api_update_profile(user_id):
        if user_id != g.user_id:
            raise Forbidden("Cannot edit another user's profile", user_id=user_id)
        user = _svc("users").update_profile(user_id, _body())
        return jsonify({"user": user.to_dict()})

    # Projects and membership

    @app.route("/api/projects", methods=["GET"])
    @require_session
    def api_projects():
        projects = _svc("registry").get_user_projects(g.user_id)
        return jsonify({"projects": [p.to_dict() for p in projects], "count": len(projects)})

    @app.route("/api/projects", methods=["POST"])
    @require_session
    def api_create_project():
        project = _svc("registry").create_project(_body().get("name", ""), g.user_id)
        return jsonify({"project": project.to_dict()}), 201

    @app.route("/api/projects/join", methods=["POST"])
    @require_session
    def api_join_project():
        joined = _svc("registry").join_project(g.user_id, _body().get("inviteCode", ""))
        return jsonify({"joined": joined})

    @app.route("/api/projects/<project_id>/members")
    @require_session
    def api_members(project_id):
        _svc("registry").require_access(project_id, g.user_id)
        return jsonify({"members": _svc("registry").get_project_members(project_id)})

    @app.route("/api/projects/<project_id>/members/<user_id>", methods=["PUT"])
    @require_session
    def api_member_role(project_id, user_id):
        _svc("registry").update_member_role(project_id, user_id, _body().get("role"), g.user_id)
        return jsonify({"ok": True})

    # Board and tasks

    @app.route("/api/projects/<project_id>/board")
    @require_session
    def api_board(project_id):
        return jsonify(_svc("registry").require_access(project_id, g.user_id).board.to_dict())

    @app.route("/api/projects/<project_id>/tasks", methods=["POST"])
    @require_session
    def api_add_task(project_id):
        data = _body()
        column_id = data.pop("columnId", "")
        board, display_id = _svc("boards").add_task(project_id, column_id, data, g.user_id)
        return jsonify({"board": board.to_dict(), "newDisplayId": display_id}), 201

    @app.route("/api/projects/<project_id>/tasks/<task_id>", methods=["PUT"])
    @require_session
    def api_update_task(project_id, task_id):
        data = _body()
        data["id"] = task_id
        board = _svc("boards").update_task(project_id, task_from_payload(data), g.user_id)
        return jsonify(board.to_dict())

    @app.route("/api/projects/<project_id>/tasks/<task_id>", methods=["DELETE"])
    @require_session
    def api_delete_task(project_id, task_id):
        return jsonify(_svc("boards").delete_task(project_id, task_id, g.user_id).to_dict())

    @app.route("/api/projects/<project_id>/tasks/<task_id>/move", methods=["POST"])
    @require_session
    def api_move_task(project_id, task_id):
        data = _body()
        board = _svc("boards").move_task(
            project_id,
            task_id,
            data.get("sourceColumnId", ""),
            data.get("destColumnId", ""),
            data.get("destIndex", 0),
            g.user_id,
        )
        return jsonify(board.to_dict())

    @app.route("/api/projects/<project_id>/tasks/<task_id>/comments", methods=["POST"])
    @require_session
    def api_add_comment(project_id, task_id):
        board = _svc("boards").add_comment(project_id, task_id, _body().get("text", ""), g.user_id)
        return jsonify(board.to_dict()), 201

    # Subtasks and attachments

    @app.route("/api/projects/<project_id>/tasks/<task_id>/subtasks", methods=["POST"])
    @require_session
    def api_add_subtask(project_id, task_id):
        board = _svc("boards").add_subtask(project_id, task_id, _body().get("title", ""), g.user_id)
        return jsonify(board.to_dict()), 201

    @app.route("/api/projects/<project_id>/tasks/<task_id>/subtasks/<subtask_id>", methods=["PATCH"])
    @require_session
    def api_update_subtask(project_id, task_id, subtask_id):
        board = _svc("boards").update_subtask(project_id, task_id, subtask_id, _body(), g.user_id)
        return jsonify(board.to_dict())

    @app.route("/api/projects/<project_id>/tasks/<task_id>/subtasks/<subtask_id>", methods=["DELETE"])
    @require_session
    def api_delete_subtask(project_id, task_id, subtask_id):
        board = _svc("boards").delete_subtask(project_id, task_id, subtask_id, g.user_id)
        return jsonify(board.to_dict())

    @app.route("/api/projects/<project_id>/tasks/<task_id>/attachments", methods=["POST"])
    @require_session
    def api_add_attachment(project_id, task_id):
        data = _body()
        board = _svc("boards").add_attachment(
            project_id,
            task_id,
            data.get("name", ""),
            data.get("type", ""),
            data.get("data", ""),
            g.user_id,
            attachment_id=data.get("id"),
        )
        return jsonify(board.to_dict()), 201

    @app.route("/api/projects/<project_id>/tasks/<task_id>/attachments/<attachment_id>", methods=["DELETE"])
    @require_session
    def api_delete_attachment(project_id, task_id, attachment_id):
        board = _svc("boards").delete_attachment(project_id, task_id, attachment_id, g.user_id)
        return jsonify(board.to_dict())


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Project Planner Server")
    parser.add_argument("--config", help="Path to planner.yaml (overrides PLANNER_CONFIG)")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to planner.db (overrides PLANNER_DB env var)")
    args = parser.parse_args(argv)

    config = Config.load(args.config)
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.db:
        config.db_path = str(Path(args.db).expanduser())

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [planner] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    app = create_app(config)
    logger.info(f"Starting planner on http://{config.host}:{config.port} (backend={config.backend}, db={config.db_path})")
    app.run(host=config.host, port=config.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
