"""MCP Protocol Engine

This module provides the core MCP protocol functionality, including:
1. Handler registration for requests and notifications
2. Routing of inbound frames to those handlers
3. Request/response correlation for outbound requests
4. Conversion of handler failures into error replies

The engine implements both client and server functionality in a single class,
allowing for bidirectional communication over one transport. It is not
thread-safe: inbound frames and outbound calls are expected on one event loop.

Example:
    ```python
    # Server-side
    protocol = McpProtocol(transport)

    @protocol.register_request_handler("calc/add")
    def add(params: dict) -> dict:
        return {"sum": params["a"] + params["b"]}

    protocol.start()

    # Client-side
    result = await protocol.send_request("calc/add", {"a": 2, "b": 3})
    ```

See Also:
    - transport.py: Transport contract and the stdio transport
    - messages.py: The message type
"""

import asyncio
import functools
import inspect
import logging
import traceback
import uuid
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import ValidationError

from .errors import (
    ErrorObject,
    InvalidMessageShape,
    MalformedMessage,
    McpError,
    RequestTimeout,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    SERVER_ERROR,
)
from .messages import Message, MessageKind
from .transport import Transport

RequestHandler = Callable[[dict[str, Any]], Any]
NotificationHandler = Callable[[dict[str, Any]], Any]
ResponseSink = Callable[[Message], Any]


@dataclass
class _PendingRequest:
    method: str
    future: asyncio.Future
    timer: asyncio.TimerHandle | None = None


class McpProtocol:
    """Drives MCP message exchange over a transport.

    The engine owns two handler tables (requests and notifications) and a
    table of pending outbound requests keyed by correlation id. Every inbound
    frame is parsed, classified and routed to exactly one of four paths:

    - request: run the registered handler and reply with its result or error
    - response / error: settle the matching pending request, if any
    - notification: run the registered handler, never reply

    Failures while processing an inbound frame are logged and never propagate
    to the transport.

    Args:
        transport (Transport | None): The transport to use. The engine
            registers itself as the transport's message handler.
        logger (logging.Logger | None): Where diagnostics go. Defaults to
            this module's logger.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        logger: logging.Logger | None = None,
    ):
        self._transport: Transport | None = None
        self._log = logger or logging.getLogger(__name__)
        self._request_handlers: dict[str, RequestHandler] = {}
        self._notification_handlers: dict[str, NotificationHandler] = {}
        self._pending_requests: dict[str, _PendingRequest] = {}
        self._tasks: set[asyncio.Task] = set()
        self._last_request_id: str | None = None

        if transport is not None:
            self.attach_transport(transport)

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def last_request_id(self) -> str | None:
        """The correlation id of the most recently sent request."""
        return self._last_request_id

    @property
    def pending_count(self) -> int:
        """Number of sent requests still waiting for a reply."""
        return len(self._pending_requests)

    def attach_transport(self, transport: Transport) -> None:
        """Use `transport` for outbound frames and receive its inbound ones.

        Args:
            transport (Transport): The transport to attach
        """
        self._transport = transport
        transport.set_message_handler(self.on_inbound_frame)

    def register_request_handler(
        self, method: str, handler: RequestHandler | None = None
    ):
        """Registers a function as the handler for a request method.

        The handler is called with the request params (an empty dict when the
        request has none). Its return value becomes the response result; if it
        returns an awaitable, the reply is sent once the awaitable settles.
        A previous handler for the same method is replaced.

        Args:
            method (str): The name of the method to handle.
            handler (RequestHandler | None, optional): The handler function.
                If None, returns a decorator. Defaults to None.

        Returns:
            A decorator if handler is None, otherwise the engine.
        """

        def decorator(func):
            self._request_handlers[method] = func
            return func

        if handler is None:
            return decorator
        decorator(handler)
        return self

    def register_notification_handler(
        self, method: str, handler: NotificationHandler | None = None
    ):
        """Registers a function as the handler for a notification method.

        Failures raised by the handler are logged and otherwise ignored.
        A previous handler for the same method is replaced.

        Args:
            method (str): The name of the notification to handle.
            handler (NotificationHandler | None, optional): The handler
                function. If None, returns a decorator. Defaults to None.

        Returns:
            A decorator if handler is None, otherwise the engine.
        """

        def decorator(func):
            self._notification_handlers[method] = func
            return func

        if handler is None:
            return decorator
        decorator(handler)
        return self

    def send_request(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> asyncio.Future:
        """Sends a request and returns a future for its result.

        Must be called from a running event loop. The future resolves with the
        `result` of the matching response or fails with an `McpError` built
        from the matching error. Without a timeout it stays pending until a
        reply arrives; cancelling it forgets the request.

        Args:
            method (str): The name of the method to call.
            params (Mapping[str, Any] | None): The parameters to pass.
            timeout (float | None): Seconds to wait before failing the future
                with `RequestTimeout`.

        Returns:
            asyncio.Future: Settled when the reply arrives.

        Raises:
            Exception: Whatever the transport raises while sending. The
                request is forgotten in that case.
        """
        id = str(uuid.uuid4())
        message = Message.new_request(method, params, id)
        frame = message.to_json() if self._transport is not None else None

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        pending = _PendingRequest(method, future)
        if timeout is not None:
            pending.timer = loop.call_later(timeout, self._expire_request, id, timeout)
        self._pending_requests[id] = pending
        self._last_request_id = id
        future.add_done_callback(functools.partial(self._forget_cancelled, id))

        self._log.debug("Sending request", extra={"jsonRpcMsg": message.to_dict()})
        if frame is not None:
            try:
                self._transport.send(frame)
            except Exception:
                self._pop_pending(id)
                raise
        return future

    def request(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> asyncio.Future:
        """Alias of `send_request`."""
        return self.send_request(method, params, timeout=timeout)

    def send_notification(
        self, method: str, params: Mapping[str, Any] | None = None
    ) -> Message:
        """Sends a notification.

        Args:
            method (str): The name of the notification.
            params (Mapping[str, Any] | None): The parameters to pass.

        Returns:
            Message: The notification that was sent.
        """
        message = Message.new_notification(method, params)
        self.send(message)
        return message

    def notify(self, method: str, params: Mapping[str, Any] | None = None) -> Message:
        """Alias of `send_notification`."""
        return self.send_notification(method, params)

    def send(self, message: Message) -> None:
        """Hands an already built message to the transport, if there is one."""
        if self._transport is None:
            return
        self._send_frame(message, message.to_json())

    def _send_frame(self, message: Message, frame: str):
        self._log.debug("Message sent", extra={"jsonRpcMsg": message.to_dict()})
        self._transport.send(frame)

    def on_inbound_frame(self, frame: str | bytes) -> asyncio.Task | None:
        """Handles one raw frame delivered by the transport.

        Nothing raised while handling the frame escapes this method.

        Returns:
            asyncio.Task | None: The task completing a deferred reply, if the
                handler returned an awaitable.
        """
        try:
            message = Message.from_json(frame)
        except MalformedMessage as e:
            self._log.warning(
                "Dropping malformed frame: %s", e, extra={"frame": frame, "error": e.data}
            )
            return None
        except Exception:
            self._log.exception("Error parsing frame", extra={"frame": frame})
            return None

        try:
            return self.process_message(message)
        except Exception:
            self._log.exception(
                "Error handling message", extra={"jsonRpcMsg": message.to_dict()}
            )
            return None

    def process_message(
        self, message: Message, on_response: ResponseSink | None = None
    ) -> asyncio.Task | None:
        """Routes a parsed message.

        Replies to requests go to `on_response` when given, else to the
        transport.

        Args:
            message (Message): The message to process.
            on_response (ResponseSink | None): Receives the reply message
                instead of the transport.

        Returns:
            asyncio.Task | None: The task completing a deferred reply, if the
                handler returned an awaitable.

        Raises:
            InvalidMessageShape: If the message is none of the four kinds.
        """
        self._log.debug("Received message", extra={"jsonRpcMsg": message.to_dict()})

        match message.kind:
            case MessageKind.REQUEST:
                return self._handle_request(message, on_response)
            case MessageKind.RESPONSE:
                self._handle_response(message)
            case MessageKind.ERROR:
                self._handle_error(message)
            case MessageKind.NOTIFICATION:
                return self._handle_notification(message)
            case _:
                raise InvalidMessageShape(data=message.to_dict())
        return None

    def start(self) -> None:
        if self._transport is not None:
            self._transport.start()

    def stop(self) -> None:
        if self._transport is not None:
            self._transport.stop()

    def is_running(self) -> bool:
        return self._transport is not None and self._transport.is_running()

    def _reply(self, message: Message, on_response: ResponseSink | None):
        # Every request gets exactly one reply, even if its result or error
        # data cannot be serialized.
        try:
            frame = message.to_json()
        except ValueError as e:
            self._log.warning(
                "Could not serialize reply to request %s", message.id, exc_info=e
            )
            message = Message.new_error(
                ErrorObject(
                    code=INTERNAL_ERROR, message=f"Could not serialize reply: {e}"
                ),
                message.id,
            )
            frame = message.to_json()

        if on_response is not None:
            on_response(message)
        elif self._transport is not None:
            self._send_frame(message, frame)

    def _error_reply(self, id: str, exc: Exception) -> Message:
        match exc:
            case McpError():
                error = exc.to_error()
            case ValidationError():
                error = ErrorObject(
                    code=INVALID_PARAMS,
                    message=f"Invalid params: {exc.title}",
                    data=exc.errors(include_url=False, include_context=False),
                )
            case _:
                self._log.warning("Request handler failed", exc_info=exc)
                error = ErrorObject(
                    code=SERVER_ERROR,
                    message=str(exc) or type(exc).__name__,
                    data={
                        "type": type(exc).__name__,
                        "trace": "".join(traceback.format_exception(exc)),
                    },
                )
        return Message.new_error(error, id)

    def _defer(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _handle_request(
        self, message: Message, on_response: ResponseSink | None
    ) -> asyncio.Task | None:
        method = message.method
        id = message.id

        handler = (
            self._request_handlers.get(method) if isinstance(method, str) else None
        )
        if handler is None:
            self._log.info("No handler for method %s", method)
            error = ErrorObject(
                code=METHOD_NOT_FOUND,
                message="Method not found",
                data={"method": method},
            )
            self._reply(Message.new_error(error, id), on_response)
            return None

        params = message.params if message.params is not None else {}
        try:
            result = handler(params)
        except Exception as e:
            self._reply(self._error_reply(id, e), on_response)
            return None

        if inspect.isawaitable(result):
            return self._defer(self._send_deferred_response(id, result, on_response))

        self._reply(Message.new_response(result, id), on_response)
        return None

    async def _send_deferred_response(
        self, id: str, awaitable: Awaitable, on_response: ResponseSink | None
    ):
        try:
            reply = Message.new_response(await awaitable, id)
        except Exception as e:
            reply = self._error_reply(id, e)

        try:
            self._reply(reply, on_response)
        except Exception:
            self._log.exception("Could not send reply to request %s", id)

    def _handle_response(self, message: Message):
        pending = self._pop_pending(message.id)
        if pending is None:
            self._log.debug("Ignoring response for unknown id %s", message.id)
            return

        if not pending.future.done():
            pending.future.set_result(message.result)

    def _handle_error(self, message: Message):
        pending = self._pop_pending(message.id)
        if pending is None:
            self._log.debug("Ignoring error for unknown id %s", message.id)
            return

        if not pending.future.done():
            pending.future.set_exception(McpError.from_error(message.error))

    def _handle_notification(self, message: Message) -> asyncio.Task | None:
        method = message.method

        handler = (
            self._notification_handlers.get(method)
            if isinstance(method, str)
            else None
        )
        if handler is None:
            self._log.info(
                "Unhandled notification %s", method, extra={"params": message.params}
            )
            return None

        params = message.params if message.params is not None else {}
        try:
            result = handler(params)
        except Exception:
            self._log.exception("Error handling notification %s", method)
            return None

        if inspect.isawaitable(result):
            return self._defer(self._finish_notification(method, result))
        return None

    async def _finish_notification(self, method: str, awaitable: Awaitable):
        try:
            await awaitable
        except Exception:
            self._log.exception("Error handling notification %s", method)

    def _pop_pending(self, id: Any) -> _PendingRequest | None:
        if not isinstance(id, str):
            return None
        pending = self._pending_requests.pop(id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
        return pending

    def _expire_request(self, id: str, timeout: float):
        pending = self._pop_pending(id)
        if pending is None or pending.future.done():
            return

        self._log.warning("Request %s (%s) timed out", id, pending.method)
        pending.future.set_exception(
            RequestTimeout(
                f"Request {pending.method} timed out after {timeout}s",
                data={"id": id, "method": pending.method},
            )
        )

    def _forget_cancelled(self, id: str, future: asyncio.Future):
        if not future.cancelled():
            return
        pending = self._pending_requests.get(id)
        if pending is not None and pending.future is future:
            self._pop_pending(id)
