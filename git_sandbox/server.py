"""HTTP adapter for the sandboxed git tools.

Routes:
    GET  /health                 liveness check
    GET  /tools                  tool names, descriptions and input schemas
    POST /tools/<name>           run one tool; JSON body holds its parameters
    GET  /resources?uri=...      read one ``git://repo/...`` resource

Every response body is an :class:`OperationResult` in wire form.  Status
codes follow the error category: VALIDATION and PROTOCOL -> 400 (unknown
tool -> 404), GIT -> 422, SYSTEM and UNKNOWN -> 500.
"""

import json
import logging
from typing import Any, Optional

from flask import Flask, Response, request

from git_sandbox.errors import ErrorCategory, ErrorCode, ErrorRecord, RejectedRequestError
from git_sandbox.logging_config import flask_request_middleware
from git_sandbox.resources import read_resource
from git_sandbox.results import OperationResult, classify_exception, create_error
from git_sandbox.tools import ToolContext, ToolRegistry, registry as default_registry

logger = logging.getLogger(__name__)

# Request size limits
MAX_REQUEST_BODY = 256 * 1024  # 256KB

_CATEGORY_STATUS = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.PROTOCOL: 400,
    ErrorCategory.GIT: 422,
    ErrorCategory.SYSTEM: 500,
    ErrorCategory.UNKNOWN: 500,
}


def status_for(record: ErrorRecord) -> int:
    """HTTP status for a failure record."""
    if record.code == ErrorCode.UNKNOWN_TOOL:
        return 404
    return _CATEGORY_STATUS.get(record.category, 500)


def _json_response(body: Any, status: int) -> Response:
    return Response(
        json.dumps(body, default=str),
        status=status,
        content_type="application/json",
    )


def _result_response(result: OperationResult[Any]) -> Response:
    if result.success:
        return _json_response(result.to_dict(), 200)
    if result.error is None:
        raise ValueError("failed result carries no error")
    return _json_response(result.to_dict(), status_for(result.error))


def _error_response(record: ErrorRecord) -> Response:
    return _json_response({"success": False, "error": record.to_dict()}, status_for(record))


def create_app(
    context: ToolContext,
    tool_registry: Optional[ToolRegistry] = None,
) -> Flask:
    """Create the Flask application.

    Args:
        context: Shared sandbox, runner and configuration.
        tool_registry: Tools to expose (defaults to the built-in registry).
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_REQUEST_BODY
    tools = tool_registry or default_registry
    flask_request_middleware(app)

    def _dispatch(action, failure_message: str) -> Response:
        try:
            return _result_response(action())
        except RejectedRequestError as exc:
            return _error_response(exc.record)
        except Exception as exc:
            return _error_response(classify_exception(exc, failure_message))

    @app.route("/tools", methods=["GET"])
    def list_tools():
        return _json_response({"tools": tools.describe()}, 200)

    @app.route("/tools/<name>", methods=["POST"])
    def call_tool(name: str):
        body = request.get_data()
        params: Any = {}
        if body.strip():
            try:
                params = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError):
                return _error_response(
                    create_error(
                        "Invalid JSON body",
                        ErrorCode.INVALID_PARAMS,
                        ErrorCategory.PROTOCOL,
                    )
                )
        return _dispatch(
            lambda: tools.call(name, params, context),
            f"Tool {name} failed",
        )

    @app.route("/resources", methods=["GET"])
    def get_resource():
        uri = request.args.get("uri", "")
        if not uri:
            return _error_response(
                create_error(
                    "Missing 'uri' query parameter",
                    ErrorCode.INVALID_RESOURCE_URI,
                    ErrorCategory.PROTOCOL,
                )
            )
        return _dispatch(lambda: read_resource(uri, context), f"Failed to read {uri}")

    @app.route("/health", methods=["GET"])
    def health():
        return _json_response({"status": "ok"}, 200)

    def _http_error(message: str, status: int) -> Response:
        return _json_response(
            {
                "success": False,
                "error": create_error(message, f"HTTP_{status}", ErrorCategory.PROTOCOL).to_dict(),
            },
            status,
        )

    @app.errorhandler(404)
    def not_found(e):
        return _http_error("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return _http_error("Method not allowed", 405)

    @app.errorhandler(413)
    def request_too_large(e):
        return _http_error(f"Request body too large (max {MAX_REQUEST_BODY} bytes)", 413)

    # Attach for external access (CLI, testing)
    app.tool_context = context
    app.tool_registry = tools

    return app


def run_server(app: Flask, host: str, port: int) -> None:
    """Serve *app* on a threaded werkzeug server until interrupted."""
    from werkzeug.serving import make_server

    logger.info("Starting git sandbox server on %s:%d", host, port)

    server = make_server(host, port, app, threaded=True)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Git sandbox server shutting down")
    finally:
        server.shutdown()
