import json
import os
import shutil
import tempfile
import unittest

from gateway_chat.credentials import CredentialsError, GatewayConfig, load_gateway_config


class TestLoadGatewayConfig(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, "openclaw.json")

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def write(self, data):
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write(data if isinstance(data, str) else json.dumps(data))

    def test_valid_config(self):
        self.write({"gateway": {"port": 18789, "auth": {"token": "abcdef0123456789"}}, "other": {}})

        config = load_gateway_config(self.path)

        self.assertEqual(config.port, 18789)
        self.assertEqual(config.token, "abcdef0123456789")
        self.assertEqual(config.url, "ws://127.0.0.1:18789")
        self.assertEqual(config.origin, "tauri://localhost")

    def test_host_and_origin_overrides(self):
        self.write({"gateway": {"port": 1234, "auth": {"token": "t"}}})
        config = load_gateway_config(self.path, host="10.0.0.2", origin=None)
        self.assertEqual(config.url, "ws://10.0.0.2:1234")
        self.assertIsNone(config.origin)

    def test_missing_file(self):
        with self.assertRaises(CredentialsError) as ctx:
            load_gateway_config(os.path.join(self.tmpdir, "nope.json"))
        self.assertIn("Failed to read", str(ctx.exception))

    def test_invalid_json(self):
        self.write("{broken")
        with self.assertRaises(CredentialsError) as ctx:
            load_gateway_config(self.path)
        self.assertIn("Failed to parse", str(ctx.exception))

    def test_missing_gateway_section(self):
        self.write({"agents": {}})
        with self.assertRaisesRegex(CredentialsError, "gateway section not found"):
            load_gateway_config(self.path)

    def test_missing_token(self):
        self.write({"gateway": {"port": 18789, "auth": {}}})
        with self.assertRaisesRegex(CredentialsError, "gateway.auth.token not found"):
            load_gateway_config(self.path)

    def test_missing_port(self):
        self.write({"gateway": {"auth": {"token": "t"}}})
        with self.assertRaisesRegex(CredentialsError, "gateway.port not found"):
            load_gateway_config(self.path)

    def test_invalid_ports(self):
        for port in ("18789", True, 0, 70000, 1.5):
            self.write({"gateway": {"port": port, "auth": {"token": "t"}}})
            with self.assertRaises(CredentialsError):
                load_gateway_config(self.path)

    def test_credentials_error_is_value_error(self):
        self.assertTrue(issubclass(CredentialsError, ValueError))

    def test_repr_truncates_token(self):
        config = GatewayConfig(token="supersecrettoken", port=1)
        self.assertNotIn("supersecrettoken", repr(config))
        self.assertIn("supersec", repr(config))


if __name__ == '__main__':
    unittest.main()
