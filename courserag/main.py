"""Main Quart application for the course RAG assistant."""
import logging
from datetime import datetime, timezone

import structlog
from quart import Quart, jsonify, request
from werkzeug.exceptions import HTTPException

from courserag import config
from courserag.errors import CourseRagError, ValidationError
from courserag.profiles import routes as profile_routes
from courserag.profiles.store import ANALYTICS, FEEDBACK
from courserag.rag.ingest import DirectorySource, SitemapSource
from courserag.rag.orchestrator import validate_query
from courserag.schemas import (
    AnalyticsEvent,
    FeedbackRequest,
    IndexContentRequest,
    QueryRequest,
    parse_body,
)
from courserag.services import Services, build_services

logging.basicConfig(format="%(message)s", level=config.LOG_LEVEL)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

CORS_ALLOW_METHODS = "GET, POST, PUT, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization"


def _source_from_request(body: IndexContentRequest):
    if body.source == "sitemap":
        sitemap_url = body.sitemap_url or config.SITEMAP_URL
        if not sitemap_url:
            raise ValidationError("sitemapUrl is required when source is 'sitemap'")
        return SitemapSource(url=sitemap_url, max_urls=body.max_urls)
    return DirectorySource(path=config.DOCS_DIR, modules=config.DOC_MODULES or None)


async def _run_ingestion(services: Services, source) -> None:
    pipeline = services.ingest_pipeline()
    try:
        stats = await pipeline.ingest(source)
    except Exception as e:
        # Background task: nothing above us to report to
        logger.error("indexing_failed", error=str(e), error_type=type(e).__name__)
        return
    logger.info("indexing_completed", **stats.to_dict())


def create_app(services: Services = None) -> Quart:
    """Create the Quart app.

    Args:
        services: Service handles (default: built from config)

    Returns:
        Configured Quart application
    """
    app = Quart(__name__)
    services = services or build_services()
    app.extensions["courserag"] = services

    app.register_blueprint(profile_routes.bp)

    @app.before_serving
    async def connect_profile_store():
        # Failure leaves the store in mock mode
        await services.profiles.connect()

    @app.after_serving
    async def close_profile_store():
        await services.profiles.close()

    @app.before_request
    async def answer_preflight():
        if request.method == "OPTIONS":
            return "", 204

    @app.after_request
    async def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in config.CORS_ORIGINS:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
            response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
            response.headers["Vary"] = "Origin"
        return response

    @app.route("/api/rag", methods=["POST"])
    async def rag():
        """Answer a question from course content.

        Expects JSON body:
        {
            "query": "user question"
        }

        Returns JSON:
        {
            "response": "generated answer",
            "sources": ["/docs/module/file.md", ...],
            "retrieved_docs_count": 3,
            "fallback_context": "..."  // only when generation failed
        }
        """
        body = parse_body(QueryRequest, await request.get_json(silent=True), "Query is required")
        answer = await services.orchestrator.answer(body.query)
        return jsonify(answer.to_dict())

    @app.route("/api/retrieve", methods=["POST"])
    async def retrieve():
        """Return ranked passages for a query without generating an answer.

        Returns JSON:
        {
            "results": [{"id", "content", "source", "score", "rank"}, ...],
            "query": "user question",
            "retrievedCount": 3
        }
        """
        body = parse_body(QueryRequest, await request.get_json(silent=True), "Query is required")
        query = validate_query(body.query)

        logger.info("retrieve_request_received", query_length=len(query), query_preview=query[:100])

        results = await services.retriever.retrieve(query)

        return jsonify({
            "results": [r.to_dict() for r in results],
            "query": query,
            "retrievedCount": len(results),
        })

    @app.route("/api/index-content", methods=["POST"])
    async def index_content():
        """Start ingestion in the background.

        Optional JSON body:
        {
            "source": "directory" | "sitemap",  // defaults to "directory"
            "sitemapUrl": "https://...",        // defaults to SITEMAP_URL
            "maxUrls": 50
        }
        """
        body = parse_body(IndexContentRequest, await request.get_json(silent=True))
        source = _source_from_request(body)

        app.add_background_task(_run_ingestion, services, source)
        logger.info("indexing_started", source=body.source)

        return jsonify({"message": "Indexing started"})

    @app.route("/api/health")
    async def health():
        """Liveness check - check the app is running."""
        return jsonify({"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()})

    @app.route("/api/analytics", methods=["POST"])
    async def analytics():
        """Record a client analytics event.

        Expects JSON body: {"event": "event_name", "data": {...}}
        """
        body = parse_body(AnalyticsEvent, await request.get_json(silent=True), "Event type is required")
        if not body.event:
            raise ValidationError("Event type is required")

        logger.info("analytics_event", event_name=body.event, data=body.data)
        await services.profiles.record_event(ANALYTICS, {"event": body.event, "data": body.data})

        return jsonify({"status": "Analytics recorded"})

    @app.route("/api/feedback", methods=["POST"])
    async def feedback():
        """Record feedback on an assistant message.

        Expects JSON body: {"messageId": "...", "feedback": "...", "messageText"?: "..."}
        """
        message = "Message ID and feedback are required"
        body = parse_body(FeedbackRequest, await request.get_json(silent=True), message)
        if not body.message_id or not body.feedback:
            raise ValidationError(message)

        logger.info(
            "feedback_received",
            message_id=body.message_id,
            feedback=body.feedback,
            message_preview=body.message_text[:100] if body.message_text else None,
        )
        await services.profiles.record_event(
            FEEDBACK,
            {"messageId": body.message_id, "feedback": body.feedback, "messageText": body.message_text},
        )

        return jsonify({"status": "Feedback recorded"})

    @app.errorhandler(CourseRagError)
    async def handle_app_error(error: CourseRagError):
        """Map application errors to their status and public message."""
        log = logger.warning if error.status_code < 500 else logger.error
        log(
            "request_failed",
            path=request.path,
            status=error.status_code,
            error=error.message,
            error_type=type(error).__name__,
        )
        return jsonify({"error": error.message}), error.status_code

    @app.errorhandler(404)
    async def not_found(error):
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(Exception)
    async def internal_error(error):
        """Handle everything else as a 500, with details only in development."""
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code

        logger.error(
            "internal_server_error",
            path=request.path,
            error=str(error),
            error_type=type(error).__name__,
        )
        body = {"error": "Internal server error"}
        if config.DEBUG:
            body["details"] = str(error)
        return jsonify(body), 500

    return app


app = create_app()


if __name__ == "__main__":
    # For development - use hypercorn in production
    app.run(host="0.0.0.0", port=config.PORT, debug=config.DEBUG)
