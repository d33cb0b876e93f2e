"""Loopback listener that receives the OAuth redirect from the user's browser.

One :class:`CallbackServer` serves exactly one login attempt:

- ``listen_and_serve`` binds the socket before it returns, then runs the
  accept loop on a background thread.
- The first request to the callback path is validated (state, provider
  error, code) and produces exactly one :class:`CallbackResult` on the
  caller's queue. Later requests get a 409 and deliver nothing.
- A watcher thread waits for either "handler done" or the caller's cancel
  event (or the optional timeout) and then stops the listener, giving
  in-flight responses a bounded grace period.
"""

import enum
import logging
import queue
import threading
import time
import urllib.parse
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List, Optional

from .errors import CallbackError

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_GRACE = 5.0
_WATCH_INTERVAL = 0.05

SUCCESS_PAGE = (
    "<html><head><title>Login complete</title></head><body>"
    "<h1>Authorization received!</h1>"
    "<p>You can close this browser tab and return to the terminal.</p>"
    "</body></html>"
)


class CallbackState(enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    DELIVERED = "delivered"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    STOPPED = "stopped"


@dataclass(frozen=True)
class CallbackResult:
    """Either an authorization code or the reason there is none."""

    code: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.code)

    @staticmethod
    def authorization_code(code: str) -> "CallbackResult":
        return CallbackResult(code=code)

    @staticmethod
    def failure(error: Exception) -> "CallbackResult":
        return CallbackResult(error=error)


def new_result_queue() -> "queue.Queue[CallbackResult]":
    return queue.Queue(maxsize=1)


class _CallbackHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    block_on_close = False

    def __init__(self, server_address, coordinator: "CallbackServer"):
        self.coordinator = coordinator
        super().__init__(server_address, _CallbackRequestHandler)


class _CallbackRequestHandler(BaseHTTPRequestHandler):
    server: _CallbackHTTPServer

    def log_message(self, format, *args):
        logger.debug("callback listener: " + format, *args)

    def do_GET(self):
        parsed = urllib.parse.urlparse(self.path)
        coordinator = self.server.coordinator
        if parsed.path != coordinator.callback_path:
            self.send_text(404, "Not found.")
            return
        coordinator.handle_callback(self, urllib.parse.parse_qs(parsed.query))

    def send_text(self, status: int, body: str, *, content_type: str = "text/plain; charset=utf-8") -> None:
        raw = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(raw)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(raw)


def _first(params: Dict[str, List[str]], key: str) -> str:
    values = params.get(key) or [""]
    return values[0]


class CallbackServer:
    """Coordinator for one login attempt. Build it through :func:`listen_and_serve`."""

    def __init__(
        self,
        expected_state: str,
        host: str,
        port: int,
        callback_path: str,
        result_queue: "queue.Queue[CallbackResult]",
        cancel_event: threading.Event,
        *,
        timeout: Optional[float] = None,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
    ):
        self.expected_state = expected_state
        self.host = host
        self.port = port
        self.callback_path = callback_path or "/"
        self.result_queue = result_queue
        self.cancel_event = cancel_event
        self.timeout = timeout
        self.shutdown_grace = float(shutdown_grace)

        self.state = CallbackState.IDLE
        self.outcome: Optional[CallbackState] = None

        self._httpd: Optional[_CallbackHTTPServer] = None
        # Set by the request handler once it has delivered, or by the cancel relay.
        self._wake = threading.Event()
        self._handler_done = threading.Event()
        self._stopped = threading.Event()
        self._consume_lock = threading.Lock()
        self._consumed = False
        self._shutdown_lock = threading.Lock()
        self._shutdown_started = False

    # -----------------
    # Lifecycle
    # -----------------

    def start(self) -> "CallbackServer":
        try:
            self._httpd = _CallbackHTTPServer((self.host, self.port), self)
        except OSError as e:
            err = CallbackError(f"Could not start the callback listener on {self.host}:{self.port}: {e}")
            logger.error("%s", err)
            self._deliver(CallbackResult.failure(err))
            self.state = CallbackState.STOPPED
            self._stopped.set()
            return self

        # Port 0 binds an ephemeral port; report the real one.
        self.port = self._httpd.server_address[1]
        self.state = CallbackState.LISTENING
        logger.info("Callback listener started on http://%s:%s%s", self.host, self.port, self.callback_path)

        threading.Thread(target=self._serve, name="oauth-callback-serve", daemon=True).start()
        threading.Thread(target=self._watch, name="oauth-callback-watch", daemon=True).start()
        return self

    def _serve(self) -> None:
        assert self._httpd is not None
        try:
            self._httpd.serve_forever(poll_interval=_WATCH_INTERVAL)
        except Exception as e:
            err = CallbackError(f"Callback listener failed: {e}")
            logger.error("%s", err)
            self._deliver(CallbackResult.failure(err))
        logger.debug("Callback listener accept loop returned")

    def _relay_cancel(self) -> None:
        # threading.Event cannot be waited on together with another one, so
        # the caller's cancel event is forwarded onto _wake.
        while not self._wake.is_set():
            if self.cancel_event.wait(_WATCH_INTERVAL):
                self._wake.set()
                return

    def _watch(self) -> None:
        threading.Thread(target=self._relay_cancel, name="oauth-callback-cancel", daemon=True).start()
        self._wake.wait(self.timeout)
        # Releases the cancel relay after a timeout.
        self._wake.set()

        with self._consume_lock:
            if self.outcome is None:
                self.outcome = CallbackState.CANCELLED if self.cancel_event.is_set() else CallbackState.TIMED_OUT
            outcome = self.outcome

        if outcome == CallbackState.DELIVERED:
            # A cancel can wake us while the handler is still responding.
            self._handler_done.wait(self.shutdown_grace)
            logger.info("Callback handled, stopping listener")
        elif outcome == CallbackState.CANCELLED:
            logger.info("Login cancelled, stopping listener")
        else:
            logger.info("No callback within %ss, stopping listener", self.timeout)

        self.shutdown()

    def shutdown(self) -> None:
        """Stop the listener; safe to call more than once."""

        with self._shutdown_lock:
            if self._shutdown_started:
                return
            self._shutdown_started = True

        httpd = self._httpd
        if httpd is None:
            self.state = CallbackState.STOPPED
            self._stopped.set()
            return

        if self.outcome is not None:
            self.state = self.outcome

        stopper = threading.Thread(target=httpd.shutdown, name="oauth-callback-shutdown", daemon=True)
        stopper.start()
        stopper.join(self.shutdown_grace)
        if stopper.is_alive():
            logger.error("Callback listener did not stop within %ss; abandoning it", self.shutdown_grace)
        else:
            logger.info("Callback listener stopped")

        try:
            httpd.server_close()
        except OSError as e:
            logger.error("Error closing callback listener socket: %s", e)

        self.state = CallbackState.STOPPED
        self._stopped.set()

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{self.callback_path}"

    # -----------------
    # Request handling
    # -----------------

    def handle_callback(self, handler: _CallbackRequestHandler, params: Dict[str, List[str]]) -> None:
        with self._consume_lock:
            # Once an outcome is decided (delivered, cancelled, timed out) the
            # attempt is over; later requests never deliver.
            first = not self._consumed and self.outcome is None
            if first:
                self._consumed = True
                self.outcome = CallbackState.DELIVERED
                self.state = CallbackState.DELIVERED

        if not first:
            logger.warning("Ignoring extra request to the callback path")
            handler.send_text(409, "This login attempt has already been completed.")
            return

        try:
            result, status, body, content_type = self._evaluate(params)
            try:
                handler.send_text(status, body, content_type=content_type)
            except OSError as e:
                logger.warning("Could not write callback response: %s", e)
            self._deliver(result)
        finally:
            self._handler_done.set()
            self._wake.set()

    def _evaluate(self, params: Dict[str, List[str]]):
        state = _first(params, "state")
        if state != self.expected_state:
            err = CallbackError(f"Invalid CSRF state: received {state[:8]!r}...")
            logger.error("CSRF state mismatch on callback")
            return (
                CallbackResult.failure(err),
                400,
                "Invalid state. Please try the authentication process again.",
                "text/plain; charset=utf-8",
            )

        provider_error = _first(params, "error")
        if provider_error:
            description = _first(params, "error_description")
            if description:
                message = f"Provider authorization error: {provider_error} - {description}"
            else:
                message = f"Provider authorization error: {provider_error}"
            logger.error("%s", message)
            return (
                CallbackResult.failure(CallbackError(message)),
                401,
                "An error occurred during authorization with the provider. You can close this tab.",
                "text/plain; charset=utf-8",
            )

        code = _first(params, "code")
        if not code:
            logger.warning("Authorization code not found on callback")
            return (
                CallbackResult.failure(CallbackError("Authorization code not found in the callback request")),
                400,
                "Authorization code not found in the request.",
                "text/plain; charset=utf-8",
            )

        logger.info("Authorization code received")
        return CallbackResult.authorization_code(code), 200, SUCCESS_PAGE, "text/html; charset=utf-8"

    def _deliver(self, result: CallbackResult) -> None:
        try:
            self.result_queue.put_nowait(result)
        except queue.Full:
            logger.warning("Callback result dropped; nobody is waiting for it")


def listen_and_serve(
    cancel_event: threading.Event,
    expected_state: str,
    host: str,
    port: int,
    callback_path: str,
    result_queue: "queue.Queue[CallbackResult]",
    *,
    timeout: Optional[float] = None,
    shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
) -> CallbackServer:
    """Bind the loopback listener and return once it is accepting connections.

    The result (or a startup failure) arrives on ``result_queue``. Setting
    ``cancel_event`` before a request arrives stops the listener without
    delivering anything.
    """

    server = CallbackServer(
        expected_state,
        host,
        port,
        callback_path,
        result_queue,
        cancel_event,
        timeout=timeout,
        shutdown_grace=shutdown_grace,
    )
    return server.start()
