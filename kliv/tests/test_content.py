# kliv/tests/test_content.py
import io
import json
import threading
import unittest
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlparse

import requests

from kliv.config.app_config import ClientConfig
from kliv.errors import ArgumentError, RequestError, UploadError
from kliv.resources.content import ContentClient, normalize_path, resolve_content_url
from kliv.tests._fakes import API_ROOT, fake_session, make_config, make_response

BASE = API_ROOT + "/v2/content"


def _client(*replies, chunk_size=4):
    session = fake_session(*replies)
    return ContentClient(make_config(upload_chunk_size=chunk_size), session), session


def _query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestNormalizePath(unittest.TestCase):
    def test_cases(self):
        cases = {
            "": "/content/",
            None: "/content/",
            "/content/uploads/x.png": "/content/uploads/x.png",
            "content/uploads/x.png": "/content/uploads/x.png",
            "/uploads/x.png": "/content/uploads/x.png",
            "uploads/x.png": "/content/uploads/x.png",
            "  /content/a.txt  ": "/content/a.txt",
        }
        for given, want in cases.items():
            self.assertEqual(normalize_path(given), want, given)


class TestResolveContentUrl(unittest.TestCase):
    def test_priority(self):
        self.assertEqual(resolve_content_url({"contentUrl": "a", "url": "b"}), "a")
        self.assertEqual(resolve_content_url({"url": "b", "path": "d"}), "b")
        self.assertEqual(resolve_content_url({"fileUrl": "c", "path": "d"}), "c")
        self.assertEqual(resolve_content_url({"contentUrl": "", "path": "d"}), "d")
        self.assertEqual(resolve_content_url("/content/x.png"), "/content/x.png")
        self.assertEqual(resolve_content_url({"data": {"url": "e", "path": "f"}}), "e")
        self.assertEqual(resolve_content_url({"data": {"path": "f"}}), "f")

    def test_nothing_found(self):
        self.assertIsNone(resolve_content_url(None))
        self.assertIsNone(resolve_content_url({"uuid": "1"}))
        self.assertIsNone(resolve_content_url({"data": "x"}))


class TestFileOps(unittest.TestCase):
    def test_list_files_with_and_without_prefix(self):
        client, session = _client(make_response(200, {"files": []}), make_response(200, {"files": [1]}))
        client.list_files()
        client.list_files("uploads/")
        self.assertEqual(session.sent[0]["url"], BASE)
        self.assertEqual(_query(session.sent[1]["url"]), {"prefix": "/content/uploads/"})

    def test_list_files_error(self):
        client, _ = _client(make_response(500, {}))
        with self.assertRaises(RequestError) as cm:
            client.list_files()
        self.assertEqual(str(cm.exception), "Failed to list files")

    def test_delete_normalizes_path(self):
        client, session = _client(make_response(200, {"deleted": True}))
        self.assertEqual(client.delete_file("/uploads/a.jpg"), {"deleted": True})
        sent = session.sent[0]
        self.assertEqual(sent["method"], "DELETE")
        self.assertEqual(_query(sent["url"]), {"path": "/content/uploads/a.jpg"})

    def test_delete_error_message(self):
        client, _ = _client(make_response(404, {"message": "File not found"}))
        with self.assertRaises(RequestError) as cm:
            client.delete_file("x")
        self.assertEqual(str(cm.exception), "File not found")

    def test_move_normalizes_both(self):
        client, session = _client(make_response(200, {"path": "/content/b.jpg"}))
        client.move_file("a.jpg", "/b.jpg")
        sent = session.sent[0]
        self.assertEqual(sent["url"], BASE + "/move")
        self.assertEqual(
            json.loads(sent["data"]),
            {"oldPath": "/content/a.jpg", "newPath": "/content/b.jpg"},
        )


class TestUpload(unittest.TestCase):
    def test_upload_bytes_with_progress(self):
        client, session = _client(make_response(200, {"contentUrl": "/content/uploads/a.png"}))
        seen = []
        out = client.upload_file(
            b"0123456789", "uploads", filename="a.png", on_progress=seen.append
        )
        self.assertEqual(out, {"contentUrl": "/content/uploads/a.png"})
        sent = session.sent[0]
        self.assertEqual(sent["method"], "POST")
        self.assertEqual(sent["url"], BASE)
        self.assertTrue(sent["headers"]["Content-Type"].startswith("multipart/form-data"))
        # "uploads" has no trailing slash, so neither does the normalized directory
        self.assertIn(b'name="directory"', sent["data"])
        self.assertIn(b"\r\n\r\n/content/uploads\r\n", sent["data"])
        self.assertIn(b'name="file"; filename="a.png"', sent["data"])
        self.assertIn(b"0123456789", sent["data"])
        # monotonically increasing up to the full body
        self.assertTrue(seen)
        self.assertEqual(seen[-1].loaded, len(sent["data"]))
        self.assertEqual(seen[-1].percentage, 100.0)
        self.assertEqual([p.loaded for p in seen], sorted(p.loaded for p in seen))

    def test_upload_file_object_and_path(self):
        import tempfile, os

        client, session = _client(make_response(200, {"url": "u1"}), make_response(200, {"url": "u2"}))
        buf = io.BytesIO(b"abc")
        buf.name = "/tmp/photo.jpg"
        client.upload_file(buf)
        self.assertIn(b'filename="photo.jpg"', session.sent[0]["data"])
        self.assertIn(b"Content-Type: image/jpeg", session.sent[0]["data"])

        with tempfile.TemporaryDirectory() as d:
            p = os.path.join(d, "doc.txt")
            with open(p, "wb") as f:
                f.write(b"hello")
            client.upload_file(p, "/content/docs/")
        self.assertIn(b'filename="doc.txt"', session.sent[1]["data"])
        self.assertIn(b"/content/docs/", session.sent[1]["data"])

    def test_upload_missing_path(self):
        client, session = _client()
        with self.assertRaises(ArgumentError):
            client.upload_file("/no/such/file.png")
        session.request.assert_not_called()

    def test_non_200_uses_server_message(self):
        client, _ = _client(make_response(413, {"message": "File too large"}))
        with self.assertRaises(UploadError) as cm:
            client.upload_file(b"x")
        self.assertEqual(str(cm.exception), "File too large")
        self.assertEqual(cm.exception.status, 413)

    def test_non_200_unparsable(self):
        client, _ = _client(make_response(502, text="Bad Gateway", content_type="text/plain"))
        with self.assertRaises(UploadError) as cm:
            client.upload_file(b"x")
        self.assertEqual(str(cm.exception), "Upload failed with status 502")

    def test_created_status_is_not_success(self):
        client, _ = _client(make_response(201, {"url": "u"}))
        with self.assertRaises(UploadError):
            client.upload_file(b"x")

    def test_invalid_json_success(self):
        client, _ = _client(make_response(200, text="ok", content_type="text/plain"))
        with self.assertRaises(UploadError) as cm:
            client.upload_file(b"x")
        self.assertEqual(str(cm.exception), "Invalid JSON response")

    def test_network_error(self):
        client, _ = _client(requests.ConnectionError("reset"))
        with self.assertRaises(UploadError) as cm:
            client.upload_file(b"x")
        self.assertEqual(str(cm.exception), "Network error")

    def test_cancel_before_start(self):
        client, session = _client()
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(UploadError) as cm:
            client.upload_file(b"x", cancel=cancel)
        self.assertEqual(str(cm.exception), "Upload cancelled")
        session.request.assert_not_called()

    def test_cancel_mid_transfer(self):
        client, session = _client(make_response(200, {"url": "never"}))
        cancel = threading.Event()

        def on_progress(p):
            cancel.set()

        with self.assertRaises(UploadError) as cm:
            client.upload_file(b"0123456789" * 10, on_progress=on_progress, cancel=cancel)
        self.assertEqual(str(cm.exception), "Upload cancelled")
        self.assertEqual(session.sent, [])


class TestUploadMultiple(unittest.TestCase):
    def test_sequential_in_order(self):
        client, session = _client(
            make_response(200, {"url": "1"}),
            make_response(200, {"url": "2"}),
            make_response(200, {"url": "3"}),
        )
        events = []
        files = [("a.png", b"a"), ("b.png", b"b"), ("c.png", b"c")]
        out = client.upload_multiple(
            files,
            "uploads",
            on_file_progress=lambda f, p: events.append(("progress", f[0])),
            on_complete=lambda f, r: events.append(("done", f[0], r["url"])),
        )
        self.assertEqual(out, [{"url": "1"}, {"url": "2"}, {"url": "3"}])
        done = [e for e in events if e[0] == "done"]
        self.assertEqual(done, [("done", "a.png", "1"), ("done", "b.png", "2"), ("done", "c.png", "3")])
        # every progress event for a file comes before its completion
        self.assertLess(events.index(("progress", "b.png")), events.index(("done", "b.png", "2")))
        self.assertLess(events.index(("done", "a.png", "1")), events.index(("progress", "b.png")))
        self.assertEqual(len(session.sent), 3)

    def test_failure_stops_the_batch(self):
        client, session = _client(
            make_response(200, {"url": "1"}),
            make_response(500, {"message": "disk full"}),
            make_response(200, {"url": "3"}),
        )
        completed = []
        with self.assertRaises(UploadError) as cm:
            client.upload_multiple(
                [("a", b"a"), ("b", b"b"), ("c", b"c")],
                on_complete=lambda f, r: completed.append(f[0]),
            )
        self.assertEqual(str(cm.exception), "disk full")
        self.assertEqual(cm.exception.results, [{"url": "1"}])
        self.assertEqual(completed, ["a"])
        # third file never attempted
        self.assertEqual(len(session.sent), 2)

    def test_cancel_between_files(self):
        client, session = _client(make_response(200, {"url": "1"}), make_response(200, {"url": "2"}))
        cancel = threading.Event()
        with self.assertRaises(UploadError) as cm:
            client.upload_multiple(
                [("a", b"a"), ("b", b"b")],
                on_complete=lambda f, r: cancel.set(),
                cancel=cancel,
            )
        self.assertEqual(str(cm.exception), "Upload cancelled")
        self.assertEqual(cm.exception.results, [{"url": "1"}])
        self.assertEqual(len(session.sent), 1)


class _UploadHandler(BaseHTTPRequestHandler):
    received = []

    def do_POST(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length)
        if len(body) < length:
            # client went away mid-body
            return
        type(self).received.append((self.path, self.headers.get("Content-Type"), body))
        payload = json.dumps({"contentUrl": "/content/uploads/a.png"}).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, *args):
        pass


class TestUploadOverLoopback(unittest.TestCase):
    def setUp(self):
        _UploadHandler.received = []
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), _UploadHandler)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        port = self.server.server_address[1]
        self.session = requests.Session()
        config = ClientConfig(
            api_root=f"http://127.0.0.1:{port}/api", timeout=5, upload_chunk_size=8
        )
        self.client = ContentClient(config, self.session)

    def tearDown(self):
        self.session.close()
        self.server.shutdown()
        self.server.server_close()
        self.thread.join(timeout=5)

    def test_streams_body_with_progress(self):
        seen = []
        out = self.client.upload_file(
            b"0123456789" * 5, "uploads/", filename="a.png", on_progress=seen.append
        )
        self.assertEqual(out, {"contentUrl": "/content/uploads/a.png"})
        self.assertEqual(len(_UploadHandler.received), 1)
        path, ctype, body = _UploadHandler.received[0]
        self.assertEqual(path, "/api/v2/content")
        self.assertTrue(ctype.startswith("multipart/form-data; boundary="))
        self.assertIn(b"\r\n\r\n/content/uploads/\r\n", body)
        self.assertIn(b"0123456789" * 5, body)
        self.assertGreater(len(seen), 1)
        self.assertEqual(seen[-1].loaded, len(body))

    def test_cancel_aborts_transfer(self):
        cancel = threading.Event()

        def on_progress(p):
            cancel.set()

        with self.assertRaises(UploadError) as cm:
            self.client.upload_file(
                b"0123456789" * 50, on_progress=on_progress, cancel=cancel
            )
        self.assertEqual(str(cm.exception), "Upload cancelled")
        self.assertEqual(_UploadHandler.received, [])


if __name__ == "__main__":
    unittest.main()
