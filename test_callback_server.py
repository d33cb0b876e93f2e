import os
import queue
import socket
import threading
import time
import unittest

import httpx

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from youtube_api.callback_server import CallbackState, listen_and_serve, new_result_queue
from youtube_api.errors import CallbackError

HOST = "127.0.0.1"
EXPECTED_STATE = "expected123"


class _SilentHandler:
    """Stands in for a request handler; records the status it was asked to send."""

    def __init__(self):
        self.statuses = []

    def send_text(self, status, body, *, content_type="text/plain"):
        self.statuses.append(status)


class CallbackServerTestCase(unittest.TestCase):
    def start(self, *, results=None, timeout=None, path="/callback"):
        self.cancel = threading.Event()
        self.results = results if results is not None else new_result_queue()
        self.server = listen_and_serve(
            self.cancel,
            EXPECTED_STATE,
            HOST,
            0,
            path,
            self.results,
            timeout=timeout,
            shutdown_grace=2.0,
        )
        self.addCleanup(self._stop)
        return self.server

    def _stop(self):
        self.cancel.set()
        self.server.wait_stopped(5)

    def get(self, query, *, path="/callback"):
        return httpx.get(f"http://{HOST}:{self.server.port}{path}", params=query, timeout=5.0, trust_env=False)

    def next_result(self):
        return self.results.get(timeout=5)


class TestCallbackEvaluation(CallbackServerTestCase):
    def test_listening_before_return(self):
        server = self.start()
        self.assertEqual(server.state, CallbackState.LISTENING)
        self.assertNotEqual(server.port, 0)

    def test_valid_callback_delivers_code(self):
        self.start()
        resp = self.get({"code": "ABC123", "state": EXPECTED_STATE})

        self.assertEqual(resp.status_code, 200)
        self.assertIn("Authorization received", resp.text)
        result = self.next_result()
        self.assertTrue(result.ok)
        self.assertEqual(result.code, "ABC123")
        self.assertIsNone(result.error)

    def test_state_mismatch_is_rejected(self):
        self.start()
        resp = self.get({"code": "ABC123", "state": "wrong"})

        self.assertEqual(resp.status_code, 400)
        result = self.next_result()
        self.assertFalse(result.ok)
        self.assertIsNone(result.code)
        self.assertIsInstance(result.error, CallbackError)
        self.assertIn("CSRF", str(result.error))

    def test_missing_state_is_rejected(self):
        self.start()
        resp = self.get({"code": "ABC123"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("CSRF", str(self.next_result().error))

    def test_provider_error_wins_over_code(self):
        self.start()
        resp = self.get({"error": "access_denied", "code": "ABC123", "state": EXPECTED_STATE})

        self.assertEqual(resp.status_code, 401)
        result = self.next_result()
        self.assertIsNone(result.code)
        self.assertIn("access_denied", str(result.error))

    def test_provider_error_description_is_included(self):
        self.start()
        self.get({"error": "access_denied", "error_description": "User said no", "state": EXPECTED_STATE})
        message = str(self.next_result().error)
        self.assertIn("access_denied", message)
        self.assertIn("User said no", message)

    def test_state_checked_before_provider_error(self):
        self.start()
        resp = self.get({"error": "access_denied", "state": "wrong"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("CSRF", str(self.next_result().error))

    def test_missing_code_is_rejected(self):
        self.start()
        resp = self.get({"state": EXPECTED_STATE})
        self.assertEqual(resp.status_code, 400)
        result = self.next_result()
        self.assertIsNone(result.code)
        self.assertIn("code", str(result.error).lower())

    def test_other_paths_do_not_consume_the_attempt(self):
        self.start()
        self.assertEqual(self.get({}, path="/favicon.ico").status_code, 404)
        self.assertTrue(self.results.empty())

        resp = self.get({"code": "ABC123", "state": EXPECTED_STATE})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.next_result().code, "ABC123")


class TestCallbackLifecycle(CallbackServerTestCase):
    def test_listener_stops_after_delivery(self):
        server = self.start()
        self.get({"code": "ABC123", "state": EXPECTED_STATE})

        self.assertTrue(server.wait_stopped(5))
        self.assertEqual(server.state, CallbackState.STOPPED)
        self.assertEqual(server.outcome, CallbackState.DELIVERED)
        with self.assertRaises(httpx.TransportError):
            self.get({"code": "AGAIN", "state": EXPECTED_STATE})

    def test_exactly_one_result_under_racing_requests(self):
        # Unbounded queue so a second delivery would be visible.
        results = queue.Queue()
        self.start(results=results)
        start = threading.Barrier(4)
        statuses = []

        def hit(i):
            start.wait()
            try:
                statuses.append(self.get({"code": f"CODE{i}", "state": EXPECTED_STATE}).status_code)
            except httpx.TransportError:
                statuses.append(None)

        threads = [threading.Thread(target=hit, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

        self.assertTrue(self.server.wait_stopped(5))
        self.assertEqual(statuses.count(200), 1)
        first = results.get(timeout=1)
        self.assertTrue(first.code.startswith("CODE"))
        self.assertTrue(results.empty())

    def test_cancel_before_callback_stops_without_result(self):
        server = self.start()
        self.cancel.set()

        self.assertTrue(server.wait_stopped(3))
        self.assertEqual(server.state, CallbackState.STOPPED)
        self.assertEqual(server.outcome, CallbackState.CANCELLED)
        self.assertTrue(self.results.empty())
        with self.assertRaises(httpx.TransportError):
            self.get({"code": "ABC123", "state": EXPECTED_STATE})

    def test_timeout_stops_without_result(self):
        server = self.start(timeout=0.2)
        self.assertTrue(server.wait_stopped(3))
        self.assertEqual(server.outcome, CallbackState.TIMED_OUT)
        self.assertTrue(self.results.empty())

    def test_cancel_after_delivery_has_no_effect(self):
        server = self.start()
        self.get({"code": "ABC123", "state": EXPECTED_STATE})
        self.assertTrue(server.wait_stopped(5))
        self.cancel.set()

        self.assertEqual(server.outcome, CallbackState.DELIVERED)
        self.assertEqual(self.next_result().code, "ABC123")

    def test_cancel_while_delivering_keeps_delivered_outcome(self):
        server = self.start()
        real_deliver = server._deliver

        def deliver_after_consumer_cancels(result):
            # The waiting caller cancels as soon as it wakes up.
            self.cancel.set()
            time.sleep(0.2)
            real_deliver(result)

        server._deliver = deliver_after_consumer_cancels
        resp = self.get({"code": "ABC123", "state": EXPECTED_STATE})

        self.assertEqual(resp.status_code, 200)
        self.assertTrue(server.wait_stopped(5))
        self.assertEqual(server.outcome, CallbackState.DELIVERED)
        self.assertEqual(self.results.get_nowait().code, "ABC123")

    def test_request_after_cancel_delivers_nothing(self):
        server = self.start()
        self.cancel.set()
        self.assertTrue(server.wait_stopped(3))

        results_before = self.results.qsize()
        handler = _SilentHandler()
        server.handle_callback(handler, {"code": ["ABC123"], "state": [EXPECTED_STATE]})
        self.assertEqual(handler.statuses, [409])
        self.assertEqual(self.results.qsize(), results_before)
        self.assertEqual(server.outcome, CallbackState.CANCELLED)

    def test_shutdown_can_be_called_twice(self):
        server = self.start()
        server.shutdown()
        server.shutdown()
        self.assertTrue(server.wait_stopped(1))
        self.assertEqual(server.state, CallbackState.STOPPED)

    def test_bind_failure_is_delivered_without_blocking(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind((HOST, 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]

            results = new_result_queue()
            server = listen_and_serve(threading.Event(), EXPECTED_STATE, HOST, port, "/", results)

            self.assertEqual(server.state, CallbackState.STOPPED)
            result = results.get(timeout=1)
            self.assertIsInstance(result.error, CallbackError)

    def test_bind_failure_with_full_queue_does_not_block(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind((HOST, 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]

            results = new_result_queue()
            results.put_nowait("occupied")
            server = listen_and_serve(threading.Event(), EXPECTED_STATE, HOST, port, "/", results)

            self.assertTrue(server.wait_stopped(0))
            self.assertEqual(results.get_nowait(), "occupied")


if __name__ == "__main__":
    unittest.main(verbosity=2)
