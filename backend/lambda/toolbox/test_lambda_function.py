"""lambda_handler routing tests: liveness, IP gate, content types, multipart."""

from __future__ import annotations

import base64
import json
import os
import socket
import sys
import tempfile
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(__file__))

import lambda_function  # noqa: E402
from config import ToolboxConfig  # noqa: E402


def _event(
    *,
    method: str = "POST",
    source_ip: str = "1.2.3.4",
    headers: dict | None = None,
    body: str | bytes | None = None,
    b64: bool = False,
) -> dict:
    if isinstance(body, bytes):
        body = base64.b64encode(body).decode("ascii")
        b64 = True
    return {
        "version": "2.0",
        "rawPath": "/",
        "requestContext": {"http": {"method": method, "path": "/", "sourceIp": source_ip}},
        "headers": headers or {},
        "body": body,
        "isBase64Encoded": b64,
    }


def _json_event(payload, **kwargs) -> dict:
    return _event(headers={"content-type": "application/json"}, body=json.dumps(payload), **kwargs)


class LambdaHandlerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scratch = tempfile.TemporaryDirectory()
        self.config = ToolboxConfig(allowed_ips=("1.2.3.4",), scratch_dir=self.scratch.name)
        patcher = patch.object(ToolboxConfig, "from_env", side_effect=lambda: self.config)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self.scratch.cleanup()

    def test_get_is_liveness_probe(self) -> None:
        resp = lambda_function.lambda_handler(_event(method="GET"), None)

        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(resp["headers"]["Content-Type"], "text/plain")
        self.assertEqual(resp["body"], "Lambda works\n")

    def test_other_methods_are_unknown(self) -> None:
        resp = lambda_function.lambda_handler(_event(method="PUT"), None)
        self.assertEqual(resp["body"], "Unknown request\n")

    @patch("lambda_function.Dispatcher")
    def test_rejected_source_ip_dispatches_nothing(self, mock_dispatcher) -> None:
        resp = lambda_function.lambda_handler(_json_event({"command": "ec2.vpcs"}, source_ip="9.9.9.9"), None)

        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(resp["body"], "SourceIP: 9.9.9.9 is NOT allowed\n")
        mock_dispatcher.assert_not_called()

    @patch("auth.socket.getaddrinfo")
    def test_allowed_host_resolves_at_request_time(self, mock_getaddrinfo) -> None:
        self.config = ToolboxConfig(allowed_hosts=("ops.example.com",), scratch_dir=self.scratch.name)
        mock_getaddrinfo.return_value = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("5.6.7.8", 0))]

        resp = lambda_function.lambda_handler(_json_event({"command": "ec2"}, source_ip="5.6.7.8"), None)

        mock_getaddrinfo.assert_called_once_with("ops.example.com", None, socket.AF_INET)
        self.assertEqual(resp["body"], "command parse error: ec2\n")

    def test_missing_content_type(self) -> None:
        resp = lambda_function.lambda_handler(_event(body="{}"), None)
        self.assertEqual(resp["body"], "No Content-Type\n")

    def test_unknown_content_type(self) -> None:
        resp = lambda_function.lambda_handler(_event(headers={"Content-Type": "text/csv"}, body="a,b"), None)
        self.assertEqual(resp["body"], "Unknown Content-Type: text/csv\n")

    def test_invalid_json_body(self) -> None:
        resp = lambda_function.lambda_handler(
            _event(headers={"content-type": "application/json"}, body="{not json"), None
        )
        self.assertTrue(resp["body"].startswith("invalid JSON body: "))

    @patch("lambda_function.Dispatcher")
    def test_json_with_charset_is_dispatched(self, mock_dispatcher) -> None:
        event = _event(
            headers={"Content-Type": "application/json; charset=utf-8"},
            body=json.dumps({"command": "ec2.vpcs"}),
        )

        lambda_function.lambda_handler(event, None)

        mock_dispatcher.return_value.dispatch.assert_called_once_with({"command": "ec2.vpcs"})

    @patch("local_exec.subprocess.run")
    def test_exec_files_body_is_exactly_the_listing(self, mock_run) -> None:
        listing = b"total 4\n-rw-r--r-- 1 sbx sbx 5 Jan  1 00:00 a.txt\n"
        mock_run.return_value = MagicMock(stdout=listing)

        resp = lambda_function.lambda_handler(_json_event({"command": "exec.files"}), None)

        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(resp["body"], listing.decode("utf-8"))
        self.assertEqual(mock_run.call_args[0][0], ["ls", "-l", self.scratch.name])

    @patch("local_exec.subprocess.run")
    def test_batch_over_http(self, mock_run) -> None:
        mock_run.return_value = MagicMock(stdout=b"one\n")

        resp = lambda_function.lambda_handler(
            _json_event({"requests": [{"command": "exec.nosuch"}, {"command": "exec.files"}]}), None
        )

        self.assertEqual(resp["body"], "unsupported operation: exec.nosuch\none\n")


class MultipartTests(unittest.TestCase):
    BOUNDARY = "XyZzY"

    def setUp(self) -> None:
        self.scratch = tempfile.TemporaryDirectory()
        self.config = ToolboxConfig(
            bucket_name="uploads", allowed_ips=("1.2.3.4",), scratch_dir=self.scratch.name
        )
        patcher = patch.object(ToolboxConfig, "from_env", side_effect=lambda: self.config)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.s3 = MagicMock()
        s3_patcher = patch("storage._get_s3", return_value=self.s3)
        s3_patcher.start()
        self.addCleanup(s3_patcher.stop)

    def tearDown(self) -> None:
        self.scratch.cleanup()

    def _part(self, disposition: str, content: bytes) -> bytes:
        return (
            f"--{self.BOUNDARY}\r\n"
            f"Content-Disposition: form-data; {disposition}\r\n"
            "Content-Type: application/octet-stream\r\n"
            "\r\n"
        ).encode("ascii") + content + b"\r\n"

    def _event(self, *parts: bytes) -> dict:
        body = b"".join(parts) + f"--{self.BOUNDARY}--\r\n".encode("ascii")
        return _event(
            headers={"Content-Type": f"multipart/form-data; boundary={self.BOUNDARY}"},
            body=body,
        )

    def test_tmp_part_goes_to_scratch_and_file_part_to_bucket(self) -> None:
        event = self._event(
            self._part('name="tmp"; filename="a.txt"', b"hello"),
            self._part('name="file"; filename="b.bin"', b"data"),
        )

        resp = lambda_function.lambda_handler(event, None)

        with open(os.path.join(self.scratch.name, "a.txt"), "rb") as fh:
            self.assertEqual(fh.read(), b"hello")
        self.s3.put_object.assert_called_once_with(Bucket="uploads", Key="tmp/b.bin", Body=b"data")
        self.assertEqual(
            resp["body"].splitlines(),
            [
                "part 0",
                "name = tmp, filename = a.txt",
                "part 1",
                "name = file, filename = b.bin",
            ],
        )

    def test_s3_name_is_a_bucket_alias(self) -> None:
        lambda_function.lambda_handler(self._event(self._part('name="s3"; filename="c.zip"', b"zip")), None)
        self.s3.put_object.assert_called_once_with(Bucket="uploads", Key="tmp/c.zip", Body=b"zip")

    def test_parts_without_filename_or_with_unknown_name_are_skipped(self) -> None:
        event = self._event(
            self._part('name="note"', b"just text"),
            self._part('name="other"; filename="d.txt"', b"x"),
        )

        resp = lambda_function.lambda_handler(event, None)

        self.s3.put_object.assert_not_called()
        self.assertEqual(os.listdir(self.scratch.name), [])
        lines = resp["body"].splitlines()
        self.assertIn("no filename", lines)
        self.assertIn("unknown name = other", lines)


if __name__ == "__main__":
    unittest.main()
