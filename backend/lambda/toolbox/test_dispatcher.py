"""Dispatcher routing, batch recursion and request decoding tests."""

from __future__ import annotations

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(__file__))

from config import ToolboxConfig  # noqa: E402
from dispatcher import Dispatcher, decode_request, parse_command  # noqa: E402
from errors import CommandParseError, MissingFieldError, UnsupportedOperationError  # noqa: E402
from handlers import FamilyHandler  # noqa: E402
from request_model import BatchRequest, ComputeParams, Family, OperationRequest  # noqa: E402
from session import Session  # noqa: E402


class _RecordingHandler(FamilyHandler):
    family = Family.COMPUTE

    def __init__(self, session: Session, calls: list) -> None:
        super().__init__(session)
        self.calls = calls
        self.verbs = {"ping": self.ping, "fail": self.fail, "boom": self.boom}

    def ping(self, command, params) -> None:
        self.calls.append((command.verb, command.args, params.name))
        self.logf("ping %s", params.name)

    def fail(self, command, params) -> None:
        self.calls.append((command.verb, command.args, params.name))
        raise MissingFieldError("need name")

    def boom(self, command, params) -> None:
        self.calls.append((command.verb, command.args, params.name))
        raise RuntimeError("kaboom")


def _dispatcher(calls: list) -> Dispatcher:
    session = Session(ToolboxConfig())
    return Dispatcher(session, handlers={Family.COMPUTE: lambda s: _RecordingHandler(s, calls)})


class ParseCommandTests(unittest.TestCase):
    def test_family_verb_and_modifiers(self) -> None:
        command = parse_command("ecs.runtask.spot")
        self.assertEqual(command.family, Family.TASKS)
        self.assertEqual(command.verb, "runtask")
        self.assertEqual(command.args, ("spot",))
        self.assertEqual(command.raw, "ecs.runtask.spot")

    def test_single_segment_is_a_parse_error(self) -> None:
        with self.assertRaises(CommandParseError) as ctx:
            parse_command("ec2")
        self.assertEqual(str(ctx.exception), "command parse error: ec2")

    def test_unknown_family_is_unsupported(self) -> None:
        with self.assertRaises(UnsupportedOperationError):
            parse_command("rds.list")


class DecodeRequestTests(unittest.TestCase):
    def test_empty_command_is_batch(self) -> None:
        request = decode_request({"requests": [{"command": "ec2.vpcs"}]})
        self.assertIsInstance(request, BatchRequest)
        self.assertEqual(request.requests, [{"command": "ec2.vpcs"}])

    def test_keys_are_case_insensitive(self) -> None:
        request = decode_request(
            {"Command": "ec2.rename", "InstanceId": "i-1", "NAME": "web", "AZ": "us-east-1a"}
        )
        self.assertIsInstance(request, OperationRequest)
        self.assertIsInstance(request.params, ComputeParams)
        self.assertEqual(request.params.instance_id, "i-1")
        self.assertEqual(request.params.name, "web")
        self.assertEqual(request.params.availability_zone, "us-east-1a")


class DispatcherTests(unittest.TestCase):
    def test_parse_error_logs_and_never_reaches_handler(self) -> None:
        calls: list = []
        dispatcher = _dispatcher(calls)

        dispatcher.dispatch({"command": "ec2"})

        self.assertEqual(calls, [])
        self.assertEqual(dispatcher.session.outputs, ["command parse error: ec2"])

    def test_unknown_verb_is_unsupported(self) -> None:
        calls: list = []
        dispatcher = _dispatcher(calls)

        dispatcher.dispatch({"command": "ec2.launchrocket"})

        self.assertEqual(calls, [])
        self.assertEqual(dispatcher.session.outputs, ["unsupported operation: ec2.launchrocket"])

    def test_unknown_family_is_unsupported(self) -> None:
        calls: list = []
        dispatcher = _dispatcher(calls)

        dispatcher.dispatch({"command": "rds.list"})

        self.assertEqual(calls, [])
        self.assertEqual(dispatcher.session.outputs, ["unsupported operation: rds.list"])

    def test_modifiers_reach_handler(self) -> None:
        calls: list = []
        dispatcher = _dispatcher(calls)

        dispatcher.dispatch({"command": "ec2.ping.a.b", "name": "x"})

        self.assertEqual(calls, [("ping", ("a", "b"), "x")])

    def test_batch_children_run_in_order_and_independently(self) -> None:
        calls: list = []
        dispatcher = _dispatcher(calls)

        dispatcher.dispatch(
            {
                "command": "",
                "requests": [
                    {"command": "ec2.ping", "name": "a"},
                    {"command": "ec2.fail"},
                    {"command": "ec2"},
                    {"command": "ec2.boom"},
                    {"command": "ec2.ping", "name": "b"},
                ],
            }
        )

        self.assertEqual([c[0] for c in calls], ["ping", "fail", "boom", "ping"])
        self.assertEqual(
            dispatcher.session.outputs,
            [
                "ping a",
                "need name",
                "command parse error: ec2",
                "internal error: kaboom",
                "ping b",
            ],
        )

    def test_nested_batches_recurse(self) -> None:
        calls: list = []
        dispatcher = _dispatcher(calls)

        dispatcher.dispatch(
            {
                "requests": [
                    {"requests": [{"command": "ec2.ping", "name": "inner"}]},
                    {"command": "ec2.ping", "name": "outer"},
                ]
            }
        )

        self.assertEqual([c[2] for c in calls], ["inner", "outer"])

    def test_type_mismatch_is_logged_for_that_node_only(self) -> None:
        calls: list = []
        dispatcher = _dispatcher(calls)

        dispatcher.dispatch(
            {
                "requests": [
                    {"command": "ec2.ping", "count": "two"},
                    {"command": "ec2.ping", "name": "ok"},
                ]
            }
        )

        self.assertEqual(calls, [("ping", (), "ok")])
        self.assertEqual(
            dispatcher.session.outputs,
            ["count: expected integer, got str", "ping ok"],
        )

    def test_non_object_child_is_logged(self) -> None:
        calls: list = []
        dispatcher = _dispatcher(calls)

        dispatcher.dispatch({"requests": ["ec2.ping"]})

        self.assertEqual(calls, [])
        self.assertEqual(dispatcher.session.outputs, ["request must be an object, got str"])


if __name__ == "__main__":
    unittest.main()
