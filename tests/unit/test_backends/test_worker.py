"""Unit tests for the backend worker loop and message protocol."""
import queue

import numpy as np
import pytest

from qrdx.backends import protocol
from qrdx.backends.protocol import TransformKind
from qrdx.backends.worker import HANDLERS, BackendWorker, serve

from fakes import finder_grid


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def worker(emitted):
    w = BackendWorker(emitted.append)
    w.handle({"type": protocol.INIT, "id": "init-1", "backend_module": "cv2"})
    emitted.clear()
    return w


def _image():
    return np.full((32, 32, 4), 255, dtype=np.uint8)


class TestProtocol:
    def test_reply_types(self):
        assert protocol.result_type(TransformKind.OPEN_CLOSE) == "open-close-result"
        assert protocol.error_type(TransformKind.MORPHOLOGY) == "morphology-error"

    def test_make_request(self):
        msg = protocol.make_request(TransformKind.SHARPEN, "r1", image=None, strength=2)

        assert msg == {"type": "sharpen", "id": "r1", "image": None, "strength": 2}

    def test_parse_kind(self):
        assert protocol.parse_kind("otsu-threshold") is TransformKind.OTSU_THRESHOLD
        assert protocol.parse_kind("init") is None

    def test_every_kind_has_a_handler(self):
        assert set(HANDLERS) == set(TransformKind)


class TestBackendWorker:
    """Test suite for BackendWorker.handle."""

    def test_init_reports_progress_then_success(self, emitted):
        w = BackendWorker(emitted.append)
        w.handle({"type": protocol.INIT, "id": "init-1", "backend_module": "cv2"})

        types = [m["type"] for m in emitted]
        assert types[-1] == protocol.INIT_SUCCESS
        assert protocol.INIT_PROGRESS in types
        percents = [m["percent"] for m in emitted if m["type"] == protocol.INIT_PROGRESS]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert all(m["id"] == "init-1" for m in emitted)
        assert w.ready

    def test_init_with_unknown_module_fails(self, emitted):
        w = BackendWorker(emitted.append)
        w.handle({"type": protocol.INIT, "id": "init-1", "backend_module": "no_such_backend_module"})

        assert emitted[-1]["type"] == protocol.INIT_ERROR
        assert "no_such_backend_module" in emitted[-1]["error"]
        assert not w.ready

    def test_second_init_is_a_noop_success(self, worker, emitted):
        worker.handle({"type": protocol.INIT, "id": "init-2"})

        assert emitted == [{"type": protocol.INIT_SUCCESS, "id": "init-2"}]

    def test_transform_before_init_is_an_error(self, emitted):
        w = BackendWorker(emitted.append)
        w.handle({"type": "otsu-threshold", "id": "r1", "image": _image()})

        assert emitted == [{"type": "otsu-threshold-error", "id": "r1", "error": "Backend not initialized"}]

    @pytest.mark.parametrize("kind,params", [
        (TransformKind.MORPHOLOGY, {"kernel_size": 9, "shape": "ellipse"}),
        (TransformKind.ADAPTIVE_THRESHOLD, {"block_size": 21, "c": 5}),
        (TransformKind.OTSU_THRESHOLD, {}),
        (TransformKind.SHARPEN, {}),
        (TransformKind.DOT_MORPHOLOGY, {"dilate_size": 5, "close_size": 9}),
        (TransformKind.OPEN_CLOSE, {"open_size": 3, "close_size": 9}),
        (TransformKind.UNSHARP, {"strength": 1.5, "radius": 1.0}),
        (TransformKind.HIGHPASS, {"strength": 2.0}),
    ])
    def test_transform_replies_with_result(self, worker, emitted, kind, params):
        worker.handle(protocol.make_request(kind, "r1", image=_image(), **params))

        assert len(emitted) == 1
        reply = emitted[0]
        assert reply["type"] == protocol.result_type(kind)
        assert reply["id"] == "r1"
        assert reply["result"].shape == (32, 32, 4)

    def test_finder_patterns_reply_is_plain_dicts(self, worker, emitted):
        worker.handle(protocol.make_request(TransformKind.DETECT_FINDER_PATTERNS, "r1", image=finder_grid()))

        reply = emitted[0]
        assert reply["type"] == "detect-finder-patterns-result"
        assert len(reply["result"]) == 3
        assert {"center_x", "center_y", "nesting_level"} <= set(reply["result"][0])

    def test_transform_failure_replies_with_error(self, worker, emitted):
        worker.handle(protocol.make_request(TransformKind.MORPHOLOGY, "r1", image=_image(), shape="hexagon"))

        assert emitted[0]["type"] == "morphology-error"
        assert emitted[0]["id"] == "r1"
        assert "hexagon" in emitted[0]["error"]

    def test_unknown_type_is_ignored(self, worker, emitted):
        assert worker.handle({"type": "teleport", "id": "r1"}) is True
        assert emitted == []

    def test_shutdown_stops(self, worker):
        assert worker.handle({"type": protocol.SHUTDOWN}) is False


class TestServe:
    def test_serve_answers_until_shutdown(self):
        requests, responses = queue.Queue(), queue.Queue()
        requests.put({"type": protocol.INIT, "id": "init-1"})
        requests.put(protocol.make_request(TransformKind.OTSU_THRESHOLD, "r1", image=_image()))
        requests.put({"type": protocol.SHUTDOWN})
        requests.put(protocol.make_request(TransformKind.OTSU_THRESHOLD, "r2", image=_image()))

        serve(requests, responses)

        replies = []
        while not responses.empty():
            replies.append(responses.get_nowait())
        ids = [m.get("id") for m in replies if m["type"].endswith("-result")]
        assert ids == ["r1"]
        assert requests.qsize() == 1

    def test_serve_stops_on_sentinel(self):
        requests, responses = queue.Queue(), queue.Queue()
        requests.put(None)

        serve(requests, responses)

        assert responses.empty()
