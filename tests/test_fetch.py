from __future__ import annotations

import tempfile
import threading
import unittest
from pathlib import Path
from unittest import mock

import requests

from sourcemap_unpack.errors import FetchTimeoutError, HTTPStatusError, NetworkError, UnsupportedSchemeError
from sourcemap_unpack.fetch import HttpFetcher


def _session(response=None, error=None) -> mock.Mock:
    session = mock.Mock()
    session.headers = {}
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return session


def _response(status_code=200, body=b"", content_type="", encoding=None):
    response = mock.Mock(status_code=status_code, encoding=encoding)
    response.headers = {"Content-Type": content_type} if content_type else {}
    response.iter_content.return_value = [body] if body else []
    return response


def _fetcher(session: mock.Mock, **kwargs) -> HttpFetcher:
    return HttpFetcher(session_factory=lambda: session, **kwargs)


class TestHttpFetcher(unittest.TestCase):
    def test_returns_body_text(self):
        response = _response(body=b"console.log(1)", content_type="text/javascript; charset=utf-8", encoding="utf-8")
        session = _session(response)
        fetch = _fetcher(session, timeout=5, verify=False)

        self.assertEqual(fetch("https://x/a.js"), "console.log(1)")
        session.get.assert_called_once_with("https://x/a.js", timeout=5, verify=False, stream=True)
        response.close.assert_called_once_with()

    def test_defaults_to_utf8_without_charset(self):
        response = _response(body="héllo".encode("utf-8"), content_type="text/javascript", encoding="ISO-8859-1")
        self.assertEqual(_fetcher(_session(response))("https://x/a.js"), "héllo")

    def test_declared_charset_is_honoured(self):
        response = _response(body="héllo".encode("latin-1"), content_type="text/javascript; charset=latin-1", encoding="latin-1")
        self.assertEqual(_fetcher(_session(response))("https://x/a.js"), "héllo")

    def test_sets_user_agent(self):
        session = _session(_response(body=b"x"))
        _fetcher(session, user_agent="agent/1")("https://x/a.js")
        self.assertEqual(session.headers["User-Agent"], "agent/1")

    def test_non_success_status(self):
        response = _response(status_code=404)
        fetch = _fetcher(_session(response))
        with self.assertRaises(HTTPStatusError) as ctx:
            fetch("https://x/a.js")
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(str(ctx.exception), "HTTP error! status: 404")
        response.close.assert_called_once_with()

    def test_timeout(self):
        fetch = _fetcher(_session(error=requests.ConnectTimeout("slow")))
        with self.assertRaises(FetchTimeoutError):
            fetch("https://x/a.js")

    def test_slow_body_hits_overall_deadline(self):
        response = _response()
        response.iter_content.return_value = iter([b"a", b"b", b"c"])
        fetch = _fetcher(_session(response), timeout=30)

        # Clock starts at 0; the deadline (30) has passed by the second chunk.
        with mock.patch("sourcemap_unpack.fetch.time.monotonic", side_effect=[0.0, 10.0, 31.0]):
            with self.assertRaises(FetchTimeoutError):
                fetch("https://x/a.js")
        response.close.assert_called_once_with()

    def test_read_error_mid_body(self):
        response = _response()
        response.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("broken")
        with self.assertRaises(NetworkError):
            _fetcher(_session(response))("https://x/a.js")

    def test_oversized_body(self):
        response = _response(body=b"0123456789")
        with self.assertRaises(NetworkError):
            _fetcher(_session(response), max_body_bytes=4)("https://x/a.js")

    def test_network_error(self):
        fetch = _fetcher(_session(error=requests.ConnectionError("refused")))
        with self.assertRaises(NetworkError):
            fetch("https://x/a.js")

    def test_unsupported_scheme(self):
        fetch = _fetcher(_session())
        for url in ("webpack://./src/a.js", "ftp://x/a.js"):
            with self.subTest(url=url):
                with self.assertRaises(UnsupportedSchemeError):
                    fetch(url)
                with self.assertRaises(UnsupportedSchemeError):
                    fetch.fetch_bytes(url)

    def test_fetch_bytes_returns_raw_content(self):
        fetch = _fetcher(_session(_response(body=b"\x28\xb5\x2f\xfd")))
        self.assertEqual(fetch.fetch_bytes("https://x/app.js.map.zst"), b"\x28\xb5\x2f\xfd")

    def test_file_urls_read_from_disk(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "a.js"
            path.write_text("local", encoding="utf-8")
            fetch = _fetcher(_session())

            self.assertEqual(fetch(path.as_uri()), "local")
            self.assertEqual(fetch.fetch_bytes(path.as_uri()), b"local")
            with self.assertRaises(NetworkError):
                fetch((Path(td) / "missing.js").as_uri())

    def test_oversized_file(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "big.js"
            path.write_bytes(b"x" * 16)
            with self.assertRaises(NetworkError):
                _fetcher(_session(), max_body_bytes=8)(path.as_uri())

    def test_each_thread_gets_its_own_session(self):
        created = []

        def factory():
            session = _session(_response(body=b"x"))
            created.append(session)
            return session

        fetch = HttpFetcher(session_factory=factory)
        fetch("https://x/a.js")
        fetch("https://x/b.js")
        worker = threading.Thread(target=fetch, args=("https://x/c.js",))
        worker.start()
        worker.join()

        self.assertEqual(len(created), 2)
        self.assertEqual(created[0].get.call_count, 2)
        self.assertEqual(created[1].get.call_count, 1)

        fetch.close()
        for session in created:
            session.close.assert_called_once_with()

    def test_context_manager_closes_sessions(self):
        session = _session(_response(body=b"x"))
        with _fetcher(session) as fetch:
            fetch("https://x/a.js")
        session.close.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
