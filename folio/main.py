"""Main Quart application for the portfolio assistant."""
import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

import structlog
from quart import Quart, Response, jsonify, request

from folio import config
from folio.config import Settings
from folio.errors import GENERIC_ERROR_MESSAGE, AssistantError
from folio.models import parse_chat_request
from folio.pipeline import ChatPipeline

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def configure_logging(level: str = None) -> None:
    """Configure structured logging."""
    logging.basicConfig(format="%(message)s", level=(level or config.LOG_LEVEL).upper())

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


configure_logging()

logger = structlog.get_logger()


def format_event(fragment: str) -> bytes:
    """Frame one fragment as a server-sent event record.

    Each line of the fragment gets its own ``data:`` field, so ``"a\\nb"``
    becomes ``data: a\\ndata: b\\n\\n`` and a record never contains a blank line.
    """
    lines = "".join(f"data: {line}\n" for line in fragment.split("\n"))
    return f"{lines}\n".encode("utf-8")


async def event_stream(fragments: AsyncIterator[str]) -> AsyncIterator[bytes]:
    """Frame fragments as SSE records.

    An upstream failure is re-raised so the server aborts the connection
    instead of closing the stream cleanly.
    """
    count = 0
    try:
        async for fragment in fragments:
            count += 1
            yield format_event(fragment)
    except asyncio.CancelledError:
        logger.info("client_disconnected", fragments_sent=count)
        raise
    except Exception as e:
        logger.error(
            "chat_stream_aborted",
            error=str(e),
            error_type=type(e).__name__,
            fragments_sent=count,
        )
        raise
    finally:
        await fragments.aclose()

    logger.info("chat_response_sent", fragments_sent=count)


class EventStream:
    """Response body framing an upstream fragment stream.

    Quart closes the body when the response ends, possibly before the first
    record is pulled; ``aclose`` then still closes the upstream stream.
    """

    def __init__(self, fragments):
        self.fragments = fragments
        self._events = event_stream(fragments)

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> bytes:
        return await self._events.__anext__()

    async def aclose(self) -> None:
        await self._events.aclose()
        await self.fragments.aclose()


def create_app(
    settings: Optional[Settings] = None,
    pipeline_factory: Optional[Callable[[Settings], ChatPipeline]] = None,
) -> Quart:
    """Create the Quart application.

    Args:
        settings: Settings to serve with (default: read from the environment)
        pipeline_factory: Builds the chat pipeline from settings (default:
            ChatPipeline.from_settings); called once, on first use
    """
    settings = settings or Settings.from_env()
    pipeline_factory = pipeline_factory or ChatPipeline.from_settings

    app = Quart(__name__)
    # Streams are bounded by the per-read upstream timeout instead
    app.config["RESPONSE_TIMEOUT"] = None

    state = {"pipeline": None}

    def get_pipeline() -> ChatPipeline:
        if state["pipeline"] is None:
            state["pipeline"] = pipeline_factory(settings)
        return state["pipeline"]

    @app.after_request
    async def add_cors_headers(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = settings.cors_allow_origin
        return response

    @app.route("/api/chat", methods=["POST", "OPTIONS"])
    async def chat():
        """Answer the latest user turn of a conversation as an event stream.

        Expects JSON body:
        {
            "messages": [
                {"id": "1", "role": "user", "content": "What is Manuela's experience?"}
            ]
        }

        Returns:
            200 text/event-stream with one "data: <fragment>" record per fragment,
            or a JSON {"error": ...} body with status 400, 500 or 503
        """
        if request.method == "OPTIONS":
            return "", 204, {
                "Access-Control-Allow-Methods": "POST, OPTIONS",
                "Access-Control-Allow-Headers": "Content-Type",
            }

        try:
            settings.check()

            data = await request.get_json(force=True, silent=True)
            chat_request = parse_chat_request(data)

            logger.info(
                "chat_request_received",
                message_count=len(chat_request.messages),
                user_message_preview=chat_request.last_user_message.content[:100],
            )

            fragments = await get_pipeline().start(chat_request)

        except AssistantError as e:
            log = logger.warning if e.status_code < 500 else logger.error
            log(
                "chat_request_failed",
                error=str(e),
                error_kind=e.kind.value,
                status_code=e.status_code,
            )
            return jsonify(e.to_dict()), e.status_code

        except Exception as e:
            logger.error("chat_endpoint_error", error=str(e), error_type=type(e).__name__)
            return jsonify({"error": GENERIC_ERROR_MESSAGE}), 500

        return Response(EventStream(fragments), status=200, headers=SSE_HEADERS)

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - check that the required settings are present."""
        problems = settings.problems()
        checks = {
            "status": "healthy" if not problems else "unhealthy",
            "configuration": not problems,
            "vector_store": settings.vector_store,
        }

        if problems:
            checks["error"] = "; ".join(problems)
            return jsonify(checks), 503

        return jsonify(checks), 200

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        """Handle 500 errors."""
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()


if __name__ == "__main__":
    # For development - use scripts/run_server.py (hypercorn) in production
    app.run(host="0.0.0.0", port=5000, debug=True)
