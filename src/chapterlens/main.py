"""Application entrypoint - aiohttp server exposing the chat relay and markup compiler."""

import functools
import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import httpx
import structlog
from aiohttp import web
from aiohttp.web import Application, Request, Response, StreamResponse, run_app

from chapterlens.config import Settings, get_settings
from chapterlens.markup import DocumentCompiler, dump_tree, parse_front_matter
from chapterlens.relay import ChatRelay, InputError, InternalError, RelayDefaults, RelayError


def configure_logging(
    log_level: str = "INFO",
    log_file: str = "",
    log_file_max_bytes: int = 10_485_760,
    log_file_backup_count: int = 5,
) -> None:
    """Configure structlog on top of standard library logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file. Empty string = console only.
        log_file_max_bytes: Max size per log file before rotation (default: 10 MB)
        log_file_backup_count: Number of rotated backup files to keep (default: 5)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter("%(message)s")

    root_logger = logging.root
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                filename=log_file,
                maxBytes=log_file_max_bytes,
                backupCount=log_file_backup_count,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            # JSON lines when writing to a file, colored console output otherwise
            structlog.processors.JSONRenderer() if log_file else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()

_json_dumps = functools.partial(json.dumps, default=str, ensure_ascii=False)


def error_response(error: RelayError) -> Response:
    return web.json_response(error.to_payload(), status=error.status)


async def chat(request: Request) -> StreamResponse:
    """Relay a chat request upstream and stream the reply back as plain text.

    Failures before the first byte come back as ``{error}`` JSON. Once
    streaming has started, a failure drops the connection instead.
    """
    relay: ChatRelay = request.app["relay"]

    try:
        payload = await request.json()
    except ValueError:
        return error_response(InputError("Invalid request body"))

    try:
        completion = relay.build_request(payload)
        upstream = await relay.open(completion)
    except RelayError as e:
        return error_response(e)
    except Exception:
        logger.exception("relay_failed")
        return error_response(InternalError("Failed to generate a response. Please try again."))

    async with upstream:
        response = StreamResponse(
            status=200,
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )
        await response.prepare(request)
        try:
            async for fragment in upstream:
                # Waits for the transport to drain: paced by the reader.
                await response.write(fragment.encode("utf-8"))
        except ConnectionResetError:
            logger.info(
                "relay_client_disconnected",
                fragment_count=upstream.fragment_count,
            )
            return response
        except RelayError as e:
            logger.error(
                "relay_stream_aborted",
                error=e.message,
                fragment_count=upstream.fragment_count,
            )
            raise
        await response.write_eof()
    return response


async def render(request: Request) -> Response:
    """Compile chapter markup into a display tree for the view layer."""
    compiler: DocumentCompiler = request.app["compiler"]

    try:
        payload = await request.json()
    except ValueError:
        return web.json_response({"error": "Invalid request body"}, status=400)

    if not isinstance(payload, dict) or not isinstance(payload.get("markdown"), str):
        return web.json_response({"error": "Field 'markdown' must be a string"}, status=400)

    source = payload["markdown"]
    style_hint = payload.get("paragraphClass")
    chapter = parse_front_matter(source)
    nodes = compiler.render(source, style_hint if isinstance(style_hint, str) else None)

    logger.debug("markup_rendered", source_length=len(source), node_count=len(nodes))
    return web.json_response(
        {
            "frontMatter": chapter.front_matter,
            "meta": chapter.meta,
            "nodes": dump_tree(nodes),
        },
        dumps=_json_dumps,
    )


async def health(request: Request) -> Response:
    """Health check endpoint."""
    return web.json_response({"status": "healthy"})


async def _close_relay(app: Application) -> None:
    await app["relay"].aclose()


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Application:
    """Create and configure the aiohttp application.

    Args:
        settings: Application settings; loaded from the environment when omitted.
        http_client: Upstream HTTP client. When omitted the relay creates and
            owns one, closed on application cleanup.
    """
    settings = settings or get_settings()
    defaults = RelayDefaults.from_settings(settings)

    if not defaults.api_key:
        logger.info("relay_default_key_missing", reason="OPENAI_API_KEY not set, callers must supply apiKey")

    app = Application()
    app["settings"] = settings
    app["relay"] = ChatRelay(defaults, http_client=http_client)
    app["compiler"] = DocumentCompiler()
    app.on_cleanup.append(_close_relay)

    app.router.add_post("/api/chat", chat)
    app.router.add_post("/api/render", render)
    app.router.add_get("/health", health)

    logger.info("app_created", model=defaults.model, base_url=defaults.base_url)
    return app


def main() -> None:
    """Run the relay server."""
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        log_file=settings.log_file,
        log_file_max_bytes=settings.log_file_max_bytes,
        log_file_backup_count=settings.log_file_backup_count,
    )

    logger.info(
        "starting_relay_server",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )

    app = create_app(settings)
    run_app(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
