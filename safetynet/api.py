"""
safetynet/api.py
─────────────────────────────────────────────────────────────────────────────
SafetyNet: dual-mode API layer

TWO USAGE MODES:
  1. Importable module (chat backend, admin dashboard jobs):
         from safetynet.api import SafetyAPI
         api = SafetyAPI(db_path=Path("safetynet.db"))
         verdict = api.moderate("Can you lend me money?")

  2. FastAPI HTTP server (admin dashboard via fetch()):
         python -m safetynet.api                   # default: port 8766
         python -m safetynet.api --port 9000
         uvicorn safetynet.api:app --port 8766

ENDPOINTS:
  GET    /health                         status + db path
  POST   /filter                         blocklist decision for one message
  POST   /moderate                       allow / warn / block decision
  POST   /classify                       report severity (rules, or external with fallback)
  POST   /scan                           corpus scan of a stored message, logs detections
  POST   /messages                       full send path: moderate → store → scan
  POST   /reports                        submit a safety report
  GET    /keywords                       active corpus
  POST   /keywords                       add keyword
  PUT    /keywords/{id}                  edit keyword
  DELETE /keywords/{id}                  soft delete
  GET    /suggestions                    pending suggestions, review-list shape
  POST   /suggestions/generate           mine message history
  POST   /suggestions/{id}/accept        accept (promotes into the corpus)
  POST   /suggestions/{id}/reject        reject
  GET    /detections/recent              newest detections
  GET    /stats                          dashboard + detection stats

CORS: localhost-only. Not exposed to network by default.

SECURITY NOTES:
  - No authentication (localhost-only admin tool assumed)
  - SQL queries use parameterized statements only
  - Message text is never written to logs
"""

import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from safetynet import __version__
from safetynet.config import DEFAULT_CONFIG, build_external_adapter, ensure_config
from safetynet.detectors.blocklist import BlocklistFilter
from safetynet.detectors.keyword_detector import KeywordScanner
from safetynet.detectors.severity import SeverityService
from safetynet.miner.suggestions import SuggestionMiner
from safetynet.moderation.moderator import ModerationService
from safetynet.services.keyword_service import KeywordService, NotFoundError
from safetynet.services.message_pipeline import MessagePipeline
from safetynet.services.safety_reports import SafetyReportService
from safetynet.storage.sqlite_store import SQLiteStores, open_stores

logger = logging.getLogger(__name__)

# ── OPTIONAL FASTAPI IMPORT ─────────────────────────────────────────────────
# The SafetyAPI class works without FastAPI.
# The HTTP server only starts when running as __main__ or via uvicorn.

try:
    from fastapi import FastAPI, HTTPException, Query
    from fastapi.middleware.cors import CORSMiddleware
    from pydantic import BaseModel
    _FASTAPI_AVAILABLE = True
except ImportError:  # pragma: no cover
    _FASTAPI_AVAILABLE = False
    FastAPI = None          # type: ignore
    HTTPException = None    # type: ignore
    BaseModel = object      # type: ignore


def to_jsonable(value: Any) -> Any:
    """Dataclasses → dicts, datetimes → ISO strings, recursively."""
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class SafetyAPI:
    """
    Pure-Python facade over the whole pipeline, bound to one database.
    Stores are opened on first use, so constructing the API touches no files.

    Usage:
        api = SafetyAPI(db_path=Path("safetynet.db"))
        api.filter_message("hello")
        api.add_keyword("gift card", "Financial Exploitation", "High")
        api.generate_suggestions(days_back=30, save=True)
    """

    def __init__(
        self,
        db_path: Optional[Path]           = None,
        config:  Optional[Dict[str, Any]] = None,
    ):
        self.config  = config if config is not None else dict(DEFAULT_CONFIG)
        self.db_path = Path(db_path or self.config.get("db_path") or DEFAULT_CONFIG["db_path"])
        self._stores: Optional[SQLiteStores] = None
        self._blocklist: Optional[BlocklistFilter] = None
        self.send_gate = BlocklistFilter()
        self.severity = SeverityService(adapter=build_external_adapter(self.config))

    # ── WIRING ────────────────────────────────────────────────────────────

    @property
    def stores(self) -> SQLiteStores:
        if self._stores is None:
            self._stores = open_stores(self.db_path)
        return self._stores

    @property
    def blocklist(self) -> BlocklistFilter:
        """Fixed list plus the active corpus. Backs /filter only; moderation uses send_gate."""
        if self._blocklist is None:
            self._blocklist = BlocklistFilter(
                keyword_store = self.stores.keywords,
                cache_ttl_sec = float(self.config.get("keyword_cache_ttl_sec", 300)),
            )
        return self._blocklist

    def scanner(self) -> KeywordScanner:
        return KeywordScanner(
            keyword_store    = self.stores.keywords,
            detection_store  = self.stores.detections,
            suggestion_store = self.stores.suggestions,
            on_critical      = _log_critical_detection,
            context_chars    = int(self.config.get("context_chars", 30)),
        )

    def keyword_service(self) -> KeywordService:
        return KeywordService(
            keyword_store    = self.stores.keywords,
            suggestion_store = self.stores.suggestions,
            detection_store  = self.stores.detections,
        )

    def miner(self) -> SuggestionMiner:
        return SuggestionMiner(
            message_store    = self.stores.messages,
            keyword_store    = self.stores.keywords,
            suggestion_store = self.stores.suggestions,
            top_k            = int(self.config.get("suggestion_top_k", 20)),
        )

    # ── DETECTION ─────────────────────────────────────────────────────────

    def filter_message(self, text: str) -> Dict[str, Any]:
        return to_jsonable(self.blocklist.filter_message(text))

    def moderate(
        self,
        text:        str,
        sender_id:   str = "",
        receiver_id: str = "",
        session_id:  str = "",
    ) -> Dict[str, Any]:
        result = ModerationService(blocklist=self.send_gate).moderate_message(text, sender_id, receiver_id, session_id)
        return to_jsonable(result)

    def classify(self, text: str) -> Dict[str, Any]:
        return {"severity": self.severity.classify(text), "external": False}

    async def classify_with_external(self, text: str) -> Dict[str, Any]:
        return {"severity": await self.severity.classify_with_external(text), "external": True}

    def scan(self, message_id: str, text: str) -> Dict[str, Any]:
        if not (message_id or "").strip():
            raise ValueError("message_id is required")
        return to_jsonable(self.scanner().scan_message(message_id, text))

    # ── SEND / REPORT ─────────────────────────────────────────────────────

    def send_message(
        self,
        text:        str,
        sender_id:   str,
        receiver_id: str,
        session_id:  str = "",
    ) -> Dict[str, Any]:
        pipeline = MessagePipeline(
            moderator     = ModerationService(blocklist=self.send_gate),
            message_store = self.stores.messages,
            scanner       = self.scanner(),
        )
        outcome = pipeline.send_message(text, sender_id, receiver_id, session_id)
        return {
            "sent":       outcome.sent,
            "message_id": outcome.message.id if outcome.message else None,
            "moderation": to_jsonable(outcome.moderation),
            "detections": to_jsonable(outcome.detections),
        }

    def submit_report(
        self,
        reporter_id:      str,
        subject:          str,
        description:      str,
        reported_user_id: Optional[str] = None,
        use_external:     bool          = False,
    ) -> Dict[str, Any]:
        service = SafetyReportService(report_store=self.stores.reports, severity=self.severity)
        report  = service.submit_report(
            reporter_id      = reporter_id,
            subject          = subject,
            description      = description,
            reported_user_id = reported_user_id,
            use_external     = use_external,
        )
        return to_jsonable(report)

    # ── CORPUS ────────────────────────────────────────────────────────────

    def list_keywords(self) -> List[Dict[str, Any]]:
        return to_jsonable(self.keyword_service().get_active_keywords())

    def add_keyword(self, phrase: str, category: str, severity: str) -> Dict[str, Any]:
        record = self.keyword_service().add_keyword(phrase, category, severity)
        self.blocklist.refresh()
        return to_jsonable(record)

    def update_keyword(self, keyword_id: str, phrase: str, category: str, severity: str) -> Dict[str, Any]:
        record = self.keyword_service().update_keyword(keyword_id, phrase, category, severity)
        self.blocklist.refresh()
        return to_jsonable(record)

    def delete_keyword(self, keyword_id: str) -> None:
        self.keyword_service().delete_keyword(keyword_id)
        self.blocklist.refresh()

    # ── SUGGESTIONS ───────────────────────────────────────────────────────

    def list_suggestions(self) -> List[Dict[str, Any]]:
        return to_jsonable(self.keyword_service().get_normalized_suggestions())

    def generate_suggestions(self, days_back: Optional[int] = None, save: bool = False) -> Dict[str, Any]:
        days = int(days_back if days_back is not None else self.config.get("suggestion_days_back", 30))
        if days < 1:
            raise ValueError("days_back must be at least 1")
        miner      = self.miner()
        candidates = miner.generate_suggestions(days)
        saved      = miner.save_suggestions(candidates) if save else 0
        return {
            "days_back":   days,
            "count":       len(candidates),
            "saved":       saved,
            "suggestions": to_jsonable(candidates),
        }

    def accept_suggestion(self, suggestion_id: str, promote: bool = True) -> Dict[str, Any]:
        created = self.keyword_service().accept_suggestion(suggestion_id, promote=promote)
        if created is not None:
            self.blocklist.refresh()
        return {"status": "accepted", "keyword": to_jsonable(created)}

    def reject_suggestion(self, suggestion_id: str) -> Dict[str, Any]:
        self.keyword_service().reject_suggestion(suggestion_id)
        return {"status": "rejected"}

    # ── DETECTION LOG ─────────────────────────────────────────────────────

    def recent_detections(self, limit: int = 50) -> List[Dict[str, Any]]:
        limit = min(max(int(limit), 1), 500)
        return to_jsonable(self.scanner().recent_detections(limit))

    def stats(self) -> Dict[str, Any]:
        scanner = self.scanner()
        return {
            "dashboard":  scanner.dashboard_stats(),
            "detections": scanner.detection_stats(),
            "blocklist":  self.blocklist.keyword_count(),
        }


def _log_critical_detection(message_id: str, matches) -> None:
    phrases = ", ".join(m.keyword.phrase for m in matches)
    logger.warning(f"CRITICAL keyword(s) in message {message_id}: {phrases}")


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP: admin dashboard interface
# Only constructed when FastAPI is available
# ═══════════════════════════════════════════════════════════════════════════

def _build_app(
    db_path: Optional[Path]           = None,
    config:  Optional[Dict[str, Any]] = None,
) -> "FastAPI":  # type: ignore
    """
    Build and return the FastAPI application instance.
    Called once at module level (if FastAPI is available) or on demand.
    """
    if not _FASTAPI_AVAILABLE:
        raise ImportError(
            "FastAPI is not installed. Run: pip install fastapi uvicorn"
        )

    _api = SafetyAPI(db_path=db_path, config=config)

    _app = FastAPI(
        title       = "SafetyNet API",
        description = "Message moderation, keyword detection and report triage",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = [
            "http://localhost",
            "http://localhost:8766",
            "http://127.0.0.1",
            "http://127.0.0.1:8766",
        ],
        allow_methods     = ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers     = ["Content-Type"],
        allow_credentials = False,
    )

    # ── REQUEST MODELS ──────────────────────────────────────────────────

    class TextRequest(BaseModel):
        text: str = ""

    class ModerateRequest(BaseModel):
        text:        str = ""
        sender_id:   str = ""
        receiver_id: str = ""
        session_id:  str = ""

    class ClassifyRequest(BaseModel):
        text:     str  = ""
        external: bool = False

    class ScanRequest(BaseModel):
        message_id: str
        text:       str = ""

    class SendRequest(BaseModel):
        text:        str
        sender_id:   str
        receiver_id: str
        session_id:  str = ""

    class ReportRequest(BaseModel):
        reporter_id:      str
        subject:          str = ""
        description:      str = ""
        reported_user_id: Optional[str] = None
        external:         bool = False

    class KeywordRequest(BaseModel):
        phrase:   str
        category: str
        severity: str

    class GenerateRequest(BaseModel):
        days_back: Optional[int] = None
        save:      bool          = True

    class AcceptRequest(BaseModel):
        promote: bool = True

    def _guard(fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.error(f"{fn.__name__} failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(exc))

    # ── ENDPOINTS ───────────────────────────────────────────────────────

    @_app.get("/health", summary="Health check")
    def health():
        return {
            "status":    "ok",
            "db_exists": _api.db_path.exists(),
            "db_path":   str(_api.db_path),
            "version":   __version__,
        }

    @_app.post("/filter", summary="Blocklist decision")
    def filter_message(req: TextRequest):
        return _guard(_api.filter_message, req.text)

    @_app.post("/moderate", summary="Pre-send moderation")
    def moderate(req: ModerateRequest):
        return _guard(_api.moderate, req.text, req.sender_id, req.receiver_id, req.session_id)

    @_app.post("/classify", summary="Report severity")
    async def classify(req: ClassifyRequest):
        """External path never fails; it falls back to rules."""
        if req.external:
            return await _api.classify_with_external(req.text)
        return _guard(_api.classify, req.text)

    @_app.post("/scan", summary="Corpus scan of a stored message")
    def scan(req: ScanRequest):
        return _guard(_api.scan, req.message_id, req.text)

    @_app.post("/messages", summary="Send a message through the pipeline")
    def send_message(req: SendRequest):
        return _guard(_api.send_message, req.text, req.sender_id, req.receiver_id, req.session_id)

    @_app.post("/reports", summary="Submit a safety report")
    def submit_report(req: ReportRequest):
        return _guard(
            _api.submit_report,
            reporter_id      = req.reporter_id,
            subject          = req.subject,
            description      = req.description,
            reported_user_id = req.reported_user_id,
            use_external     = req.external,
        )

    @_app.get("/keywords", summary="Active keyword corpus")
    def list_keywords():
        data = _guard(_api.list_keywords)
        return {"count": len(data), "keywords": data}

    @_app.post("/keywords", summary="Add keyword", status_code=201)
    def add_keyword(req: KeywordRequest):
        return _guard(_api.add_keyword, req.phrase, req.category, req.severity)

    @_app.put("/keywords/{keyword_id}", summary="Edit keyword")
    def update_keyword(keyword_id: str, req: KeywordRequest):
        return _guard(_api.update_keyword, keyword_id, req.phrase, req.category, req.severity)

    @_app.delete("/keywords/{keyword_id}", summary="Soft-delete keyword")
    def delete_keyword(keyword_id: str):
        _guard(_api.delete_keyword, keyword_id)
        return {"status": "ok"}

    @_app.get("/suggestions", summary="Pending suggestions")
    def list_suggestions():
        data = _guard(_api.list_suggestions)
        return {"count": len(data), "suggestions": data}

    @_app.post("/suggestions/generate", summary="Mine message history for suggestions")
    def generate_suggestions(req: GenerateRequest):
        return _guard(_api.generate_suggestions, req.days_back, req.save)

    @_app.post("/suggestions/{suggestion_id}/accept", summary="Accept suggestion")
    def accept_suggestion(suggestion_id: str, req: Optional[AcceptRequest] = None):
        promote = req.promote if req is not None else True
        return _guard(_api.accept_suggestion, suggestion_id, promote)

    @_app.post("/suggestions/{suggestion_id}/reject", summary="Reject suggestion")
    def reject_suggestion(suggestion_id: str):
        return _guard(_api.reject_suggestion, suggestion_id)

    @_app.get("/detections/recent", summary="Newest detections")
    def recent_detections(limit: int = Query(50, ge=1, le=500)):
        data = _guard(_api.recent_detections, limit)
        return {"count": len(data), "detections": data}

    @_app.get("/stats", summary="Dashboard statistics")
    def stats():
        return _guard(_api.stats)

    return _app


# Module-level app instance, used by uvicorn safetynet.api:app
# Only created if FastAPI is importable
if _FASTAPI_AVAILABLE:
    app = _build_app(config=ensure_config())
else:
    app = None  # type: ignore


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT: python -m safetynet.api
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import argparse
    import sys

    parser = argparse.ArgumentParser(
        prog        = "safetynet.api",
        description = "SafetyNet API Server",
    )
    parser.add_argument("--port", type=int, default=8766,
                        help="Port to bind (default: 8766)")
    parser.add_argument("--db",   type=str, default=None,
                        help="Path to the database (default: from config)")
    parser.add_argument("--host", type=str, default="127.0.0.1",
                        help="Host to bind. Keep on localhost for the admin tool")
    args = parser.parse_args()

    if not _FASTAPI_AVAILABLE:
        print(
            "ERROR: FastAPI not installed.\n"
            "Run:  pip install fastapi uvicorn",
            file=sys.stderr,
        )
        sys.exit(1)

    import uvicorn

    logging.basicConfig(
        level   = logging.INFO,
        format  = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt = "%H:%M:%S",
    )

    cfg = ensure_config()
    server_app = _build_app(db_path=Path(args.db) if args.db else None, config=cfg)

    print(f"""
+--------------------------------------------------+
|   SafetyNet API Server v{__version__}                    |
+--------------------------------------------------+
|  Local:    http://{args.host}:{args.port}
|  DB:       {args.db or cfg.get("db_path")}
|  Docs:     http://{args.host}:{args.port}/docs
|  Health:   http://{args.host}:{args.port}/health
+--------------------------------------------------+
""")

    uvicorn.run(
        server_app,
        host      = args.host,
        port      = args.port,
        log_level = "info",
    )
