import argparse
import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from gateway_chat.credentials import CredentialsError, GatewayConfig
from gateway_chat.identity import IdentityStore
from gateway_chat.main import ChatSession, add_connection_args, config_from_args, main
from gateway_chat.memory_storage import MemoryIdentityStorage
from gateway_chat.logger import Logger

from gateway_chat.tests.fake_gateway import DEFAULT_TOKEN, FakeGateway

# Disable logging output during tests
Logger.enabled = False


def parse(argv):
    parser = argparse.ArgumentParser()
    add_connection_args(parser)
    return parser.parse_args(argv)


class TestConfigFromArgs(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, "openclaw.json")
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump({"gateway": {"port": 18789, "auth": {"token": "file-token"}}}, f)

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_explicit_credentials_skip_file(self):
        args = parse(["--config", os.path.join(self.tmpdir, "missing.json"), "--port", "4000", "--token", "t"])
        config = config_from_args(args)
        self.assertEqual(config.url, "ws://127.0.0.1:4000")
        self.assertEqual(config.token, "t")

    def test_file_with_overrides(self):
        config = config_from_args(parse(["--config", self.path, "--port", "5000"]))
        self.assertEqual(config.port, 5000)
        self.assertEqual(config.token, "file-token")

        config = config_from_args(parse(["--config", self.path, "--token", "flag-token", "--host", "localhost"]))
        self.assertEqual(config.port, 18789)
        self.assertEqual(config.token, "flag-token")
        self.assertEqual(config.url, "ws://localhost:18789")

    def test_missing_file_raises(self):
        with self.assertRaises(CredentialsError):
            config_from_args(parse(["--config", os.path.join(self.tmpdir, "missing.json")]))


class TestMain(unittest.TestCase):
    def test_bad_credentials_exit_code(self):
        self.assertEqual(main(["--config", "/nonexistent/openclaw.json"]), 1)

    @patch('gateway_chat.main.ChatSession')
    def test_runs_session(self, mock_session_cls):
        mock_session_cls.return_value.run.return_value = 0
        tmpdir = tempfile.mkdtemp()
        try:
            exit_code = main(["--port", "4000", "--token", "t", "--identity-dir", tmpdir,
                              "--reconnect-delay", "1.5", "--speak-cmd", "say"])
        finally:
            shutil.rmtree(tmpdir, ignore_errors=True)

        self.assertEqual(exit_code, 0)
        config, identity_store = mock_session_cls.call_args.args
        self.assertEqual(config.port, 4000)
        self.assertIsInstance(identity_store, IdentityStore)
        self.assertEqual(mock_session_cls.call_args.kwargs["reconnect_delay"], 1.5)
        self.assertEqual(mock_session_cls.call_args.kwargs["speech"].argv, ["say"])


@patch('builtins.print')
class TestChatSession(unittest.TestCase):
    def setUp(self):
        self.gateway = FakeGateway()
        self.speech = MagicMock()

    def make_session(self, config=None):
        return ChatSession(
            config or GatewayConfig(token=DEFAULT_TOKEN, port=18789),
            IdentityStore(MemoryIdentityStorage()),
            reconnect_delay=10,
            speech=self.speech,
            transport_factory=self.gateway.factory,
        )

    def test_chat_until_quit(self, mock_print):
        session = self.make_session()
        read_line = MagicMock(side_effect=["hello", "   ", "/history", "/quit"])

        self.assertEqual(session.run(read_line), 0)

        sends = [params for method, params in self.gateway.requests if method == "chat.send"]
        self.assertEqual([p["message"] for p in sends], ["hello"])
        self.speech.assert_called_once_with("run-1", "Hello there")
        self.assertFalse(self.gateway.current.is_open)
        self.assertEqual(read_line.call_count, 4)

    def test_eof_exits(self, mock_print):
        session = self.make_session()
        self.assertEqual(session.run(MagicMock(side_effect=EOFError)), 0)
        self.assertFalse(session.client.is_connected)

    def test_ctrl_c_exits(self, mock_print):
        session = self.make_session()
        self.assertEqual(session.run(MagicMock(side_effect=KeyboardInterrupt)), 0)
        self.assertFalse(self.gateway.current.is_open)

    def test_send_failure_printed(self, mock_print):
        self.gateway.send_error = {"message": "rate limited"}
        session = self.make_session()

        session.run(MagicMock(side_effect=["hello", "/quit"]))

        printed = " ".join(str(c.args[0]) for c in mock_print.call_args_list if c.args)
        self.assertIn("Failed to send: rate limited", printed)
        self.speech.assert_not_called()


if __name__ == '__main__':
    unittest.main()
