"""
hush/api.py
─────────────────────────────────────────────────────────────────────────────
mINd-HUSh — command surface for the tray UI

TWO USAGE MODES:
  1. Importable class (tray / menu-bar front end in-process):
         from hush.api import HushAPI
         api = HushAPI(orchestrator)
         groups = api.get_groups()
         api.subscribe(lambda event: refresh())     # 'notifications-updated'

  2. FastAPI HTTP server (web UI via fetch()):
         hush --api                                  # default: 127.0.0.1:8766

ENDPOINTS:
  GET    /groups                          — notification groups, newest first
  DELETE /notifications/{id}              — clear one notification
  DELETE /apps/{bundle_id}/notifications  — clear one app
  DELETE /notifications                   — clear all
  GET    /prompts                         — per-app classification context
  PUT    /prompts/{bundle_id}             — set context  {"context": "..."}
  DELETE /prompts/{bundle_id}             — delete context
  GET    /ignored                         — ignored bundle ids
  POST   /ignored/{bundle_id}             — ignore an app
  DELETE /ignored/{bundle_id}             — stop ignoring an app
  POST   /test-notifications              — inject samples {"count": 8}
  POST   /apps/{bundle_id}/open           — launch the app
  GET    /summary                         — summary of current notifications
  GET    /status                          — agent status (store health, focus, cursor)
  GET    /updates?since=<revision>        — change signal for polling UIs
  GET    /health                          — liveness

The server binds to 127.0.0.1 only. No authentication (single-user device).
"""

import logging
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from hush import __version__
from hush.alerts import open_app
from hush.orchestrator import EVENT_NOTIFICATIONS_UPDATED, Orchestrator

logger = logging.getLogger(__name__)


class HushAPI:
    """
    Pure-Python command layer over one running Orchestrator.
    Reads are snapshots; side-effect calls return a bool or a count and
    publish 'notifications-updated' when they change the table.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        launcher:     Callable[[str], None] = open_app,
    ):
        self.orchestrator = orchestrator
        self.launcher     = launcher

    @property
    def _engine(self):
        return self.orchestrator.engine

    def _changed(self) -> None:
        self.orchestrator.publish(EVENT_NOTIFICATIONS_UPDATED)

    # ── NOTIFICATIONS ─────────────────────────────────────────────────────

    def get_groups(self) -> List[Dict[str, Any]]:
        return [asdict(g) for g in self._engine.snapshot()]

    def clear_notification(self, notification_id: int) -> bool:
        cleared = self._engine.clear_one(int(notification_id))
        if cleared:
            self._changed()
        return cleared

    def clear_app(self, bundle_id: str) -> int:
        cleared = self._engine.clear_app(bundle_id)
        if cleared:
            self._changed()
        return cleared

    def clear_all(self) -> int:
        cleared = self._engine.clear_all()
        if cleared:
            self._changed()
        return cleared

    def inject_test_notifications(self, count: Optional[int] = None) -> int:
        return self.orchestrator.inject_test_notifications(count)

    def get_urgency_counts(self) -> Dict[str, int]:
        return self._engine.urgency_counts()

    def summarize(self) -> Optional[str]:
        return self.orchestrator.summarize()

    # ── PROMPTS ───────────────────────────────────────────────────────────

    def get_prompts(self) -> List[Dict[str, str]]:
        return [asdict(e) for e in self.orchestrator.prompts.list()]

    def set_prompt(self, bundle_id: str, context: str) -> bool:
        """Raises ValueError on an empty bundle id or context."""
        return self.orchestrator.prompts.set(bundle_id, context)

    def delete_prompt(self, bundle_id: str) -> bool:
        return self.orchestrator.prompts.delete(bundle_id)

    # ── IGNORE LIST ───────────────────────────────────────────────────────

    def get_ignored_apps(self) -> List[str]:
        return self.orchestrator.ignored.list()

    def add_ignored_app(self, bundle_id: str) -> bool:
        """Raises ValueError on an empty bundle id."""
        return self.orchestrator.ignored.add(bundle_id)

    def remove_ignored_app(self, bundle_id: str) -> bool:
        return self.orchestrator.ignored.remove(bundle_id)

    # ── MISC ──────────────────────────────────────────────────────────────

    def open_app(self, bundle_id: str) -> None:
        self.launcher(bundle_id)

    def get_status(self) -> Dict[str, Any]:
        return self.orchestrator.status()

    def revision(self) -> int:
        return self._engine.revision

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        return self.orchestrator.subscribe(listener)


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

def build_app(api: HushAPI):
    """Build the FastAPI application around an existing HushAPI."""
    from fastapi import FastAPI, HTTPException, Query
    from fastapi.middleware.cors import CORSMiddleware
    from pydantic import BaseModel

    class PromptRequest(BaseModel):
        context: str

    class InjectRequest(BaseModel):
        count: Optional[int] = None

    _app = FastAPI(
        title       = "mINd-HUSh API",
        description = "Focus-session notification triage — local command surface",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    # CORS: only allow localhost origins (the tray UI runs as file:// or localhost)
    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = [
            "http://localhost",
            "http://localhost:8766",
            "http://127.0.0.1",
            "http://127.0.0.1:8766",
            "null",   # file:// origin
        ],
        allow_methods     = ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers     = ["Content-Type"],
        allow_credentials = False,
    )

    @_app.get("/groups", summary="Notification groups")
    def get_groups():
        return {"groups": api.get_groups(), "revision": api.revision()}

    @_app.delete("/notifications/{notification_id}", summary="Clear one notification")
    def clear_notification(notification_id: int):
        return {"cleared": api.clear_notification(notification_id)}

    @_app.delete("/apps/{bundle_id}/notifications", summary="Clear one app")
    def clear_app(bundle_id: str):
        return {"cleared": api.clear_app(bundle_id)}

    @_app.delete("/notifications", summary="Clear all notifications")
    def clear_all():
        return {"cleared": api.clear_all()}

    @_app.get("/prompts", summary="Per-app prompts")
    def get_prompts():
        return {"prompts": api.get_prompts()}

    @_app.put("/prompts/{bundle_id}", summary="Set per-app prompt")
    def set_prompt(bundle_id: str, req: PromptRequest):
        try:
            changed = api.set_prompt(bundle_id, req.context)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except OSError as exc:
            logger.error(f"Saving app prompt failed: {exc}")
            raise HTTPException(status_code=500, detail="failed to save app prompt")
        return {"changed": changed}

    @_app.delete("/prompts/{bundle_id}", summary="Delete per-app prompt")
    def delete_prompt(bundle_id: str):
        try:
            return {"removed": api.delete_prompt(bundle_id)}
        except OSError as exc:
            logger.error(f"Deleting app prompt failed: {exc}")
            raise HTTPException(status_code=500, detail="failed to delete app prompt")

    @_app.get("/ignored", summary="Ignored apps")
    def get_ignored():
        return {"ignored": api.get_ignored_apps()}

    @_app.post("/ignored/{bundle_id}", summary="Ignore an app")
    def add_ignored(bundle_id: str):
        try:
            return {"changed": api.add_ignored_app(bundle_id)}
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except OSError as exc:
            logger.error(f"Saving ignored app failed: {exc}")
            raise HTTPException(status_code=500, detail="failed to save ignored app")

    @_app.delete("/ignored/{bundle_id}", summary="Stop ignoring an app")
    def remove_ignored(bundle_id: str):
        try:
            return {"removed": api.remove_ignored_app(bundle_id)}
        except OSError as exc:
            logger.error(f"Removing ignored app failed: {exc}")
            raise HTTPException(status_code=500, detail="failed to remove ignored app")

    @_app.post("/test-notifications", summary="Inject test notifications")
    def inject(req: Optional[InjectRequest] = None):
        count = req.count if req is not None else None
        return {"inserted": api.inject_test_notifications(count)}

    @_app.post("/apps/{bundle_id}/open", summary="Open an app")
    def open_app_endpoint(bundle_id: str):
        try:
            api.open_app(bundle_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except OSError as exc:
            raise HTTPException(status_code=500, detail=f"failed to open app {bundle_id}: {exc}")
        return {"status": "ok"}

    @_app.get("/summary", summary="Summary of current notifications")
    def summary():
        return {"summary": api.summarize()}

    @_app.get("/status", summary="Agent status")
    def status():
        return api.get_status()

    @_app.get("/updates", summary="Change signal")
    def updates(since: int = Query(-1, description="Last revision the client rendered")):
        """
        Polling counterpart of the 'notifications-updated' event.
        changed=true means the client should re-fetch /groups.
        """
        revision = api.revision()
        return {
            "event":    EVENT_NOTIFICATIONS_UPDATED,
            "revision": revision,
            "changed":  revision != since,
            "counts":   api.get_urgency_counts(),
        }

    @_app.get("/health", summary="Health check")
    def health():
        return {"status": "ok", "version": __version__}

    return _app
