from __future__ import annotations

import json
import logging
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from aduib_intercept.protocol.errors import (
    JSONRPC_INVALID_REQUEST,
    JSONRPC_PARSE_ERROR,
    exception_to_rpc_error,
)
from aduib_intercept.protocol.types import RpcError
from aduib_intercept.server.context import ServerSession
from aduib_intercept.server.request_handler import InterceptorRequestHandler

logger = logging.getLogger(__name__)

DEFAULT_RPC_PATH = "/rpc"
SESSION_HEADER = "x-session-id"


class InterceptorJsonRpcApp:
    """JSON-RPC 2.0 over HTTP POST for the interceptor protocol.

    Args:
        request_handler: Protocol handler that executes the methods.
        server_name: Name reported in the capability document.
        server_version: Version reported in the capability document.
    """

    def __init__(
        self,
        request_handler: InterceptorRequestHandler,
        server_name: str = "aduib-intercept",
        server_version: str = "0.1.0",
    ) -> None:
        self.request_handler = request_handler
        self.server_name = server_name
        self.server_version = server_version

    def build(self, rpc_path: str = DEFAULT_RPC_PATH, **kwargs: Any) -> Starlette:
        """Build the Starlette application.

        Args:
            rpc_path: Path serving both the JSON-RPC endpoint (POST) and the capability document (GET).
            **kwargs: Passed through to ``Starlette``.
        """
        routes = [
            Route(rpc_path, self._handle_requests, methods=["POST"]),
            Route(rpc_path, self._describe, methods=["GET"]),
        ]
        return Starlette(routes=routes, **kwargs)

    async def _describe(self, request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "serverInfo": {"name": self.server_name, "version": self.server_version},
                "capabilities": self.request_handler.capabilities(),
            }
        )

    def _build_session(self, request: Request) -> ServerSession:
        session = ServerSession(server_name=self.server_name, server_version=self.server_version)
        session_id = request.headers.get(SESSION_HEADER)
        if session_id:
            session.session_id = session_id
        return session

    async def _handle_requests(self, request: Request) -> Response:
        request_id: Any = None
        try:
            body = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Rejecting unparseable JSON-RPC body: %s", e)
            return self._generate_error_response(None, JSONRPC_PARSE_ERROR, "Parse error")

        if not isinstance(body, dict):
            return self._generate_error_response(None, JSONRPC_INVALID_REQUEST, "Invalid Request")
        request_id = body.get("id")
        method = body.get("method")
        params = body.get("params")
        if body.get("jsonrpc") != "2.0" or not isinstance(method, str) or not (
            params is None or isinstance(params, dict)
        ):
            return self._generate_error_response(request_id, JSONRPC_INVALID_REQUEST, "Invalid Request")

        logger.debug("Request ID=%s, Method=%s", request_id, method)
        session = self._build_session(request)
        try:
            result = await self.request_handler.handle(method, params, session=session)
        except Exception as e:
            if "id" not in body:
                logger.warning("Notification %s failed: %s", method, e)
                return Response(status_code=204)
            return self._generate_rpc_error_response(request_id, exception_to_rpc_error(e))

        if "id" not in body:
            return Response(status_code=204)
        return JSONResponse({"jsonrpc": "2.0", "id": request_id, "result": result}, status_code=200)

    def _generate_error_response(self, request_id: Any, code: int, message: str) -> JSONResponse:
        return JSONResponse(
            {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}},
            status_code=200,
        )

    def _generate_rpc_error_response(self, request_id: Any, error: RpcError) -> JSONResponse:
        payload = error.model_dump(mode="json", exclude_none=True)
        logger.error(
            "Request Error ID=%s, Code=%d, Message=%s",
            request_id,
            error.code,
            error.message,
        )
        return JSONResponse(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {"code": int(error.code), "message": error.message, "data": payload},
            },
            status_code=200,
        )
