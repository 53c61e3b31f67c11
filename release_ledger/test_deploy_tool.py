"""
End-to-end test of the deployment tool: config, create, inspect, release.
"""
import io
import json
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stdout

from release_ledger.config import Config
from release_ledger.deploy_tool import main, serve_metrics

RECIPIENT_HEX = 'aa' * 20


class TestDeployTool(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.test_dir, 'token.json')
        self.key_path = os.path.join(self.test_dir, 'token.controller.pem')
        self.db_path = os.path.join(self.test_dir, 'data')

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def run_tool(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(list(argv))
        return code, out.getvalue()

    def inspect(self):
        code, output = self.run_tool('inspect', '--db', self.db_path)
        self.assertEqual(code, 0)
        return json.loads(output)

    def deploy(self):
        self.assertEqual(self.run_tool('sample-config', '--output', self.config_path)[0], 0)
        self.assertTrue(os.path.exists(self.key_path))
        self.assertEqual(
            self.run_tool('create', '--config', self.config_path, '--output-db', self.db_path)[0], 0)
        return Config.from_file(self.config_path)

    def release(self, amount):
        return self.run_tool(
            'release', '--db', self.db_path, '--key', self.key_path,
            '--to', RECIPIENT_HEX, '--amount', str(amount),
        )

    def test_full_deployment(self):
        """Test sample config, create, release and a rejected second release."""
        config = self.deploy()
        supply = config.token.total_supply

        stats = self.inspect()
        self.assertFalse(stats['released'])
        self.assertEqual(stats['custodial_balance'], supply)
        self.assertEqual(stats['controller'], config.token.controller)

        code, _ = self.release(supply)
        self.assertEqual(code, 0)

        stats = self.inspect()
        self.assertTrue(stats['released'])
        self.assertEqual(stats['custodial_balance'], 0)

        code, output = self.release(0)
        self.assertEqual(code, 1)
        self.assertIn("AlreadyReleased", output)

    def test_partial_release_rejected(self):
        config = self.deploy()
        code, output = self.release(config.token.total_supply - 1)
        self.assertEqual(code, 1)
        self.assertIn("AmountMismatch", output)
        self.assertFalse(self.inspect()['released'])

    def test_create_refuses_existing_db(self):
        self.deploy()
        code, output = self.run_tool('create', '--config', self.config_path, '--output-db', self.db_path)
        self.assertEqual(code, 1)
        self.assertIn("already exists", output)

    def test_create_uses_configured_db_path(self):
        self.run_tool('sample-config', '--output', self.config_path)
        config = Config.from_file(self.config_path)
        config.database.path = self.db_path
        config.database.compression = ""
        config.to_file(self.config_path)

        code, _ = self.run_tool('create', '--config', self.config_path)
        self.assertEqual(code, 0)
        self.assertEqual(self.inspect()['custodial_balance'], config.token.total_supply)

    def test_serve_requires_enabled_monitoring(self):
        self.deploy()
        code, output = self.run_tool('serve', '--config', self.config_path, '--db', self.db_path)
        self.assertEqual(code, 1)
        self.assertIn("monitoring is disabled", output)

    def test_serve_exposes_configured_endpoint(self):
        """Test that serve attaches a monitor on the configured host and port."""
        self.deploy()
        config = Config.from_file(self.config_path)
        config.monitoring.enabled = True
        config.monitoring.port = 0  # any free port
        config.to_file(self.config_path)

        out = io.StringIO()
        with redirect_stdout(out):
            code = serve_metrics(self.config_path, self.db_path, interval=0, cycles=1)
        self.assertEqual(code, 0)
        self.assertIn("/metrics", out.getvalue())

    def test_create_rejects_invalid_config(self):
        config = Config.default()
        config.to_file(self.config_path)
        code, output = self.run_tool('create', '--config', self.config_path, '--output-db', self.db_path)
        self.assertEqual(code, 1)
        self.assertIn("InvalidParameter", output)
        self.assertFalse(os.path.exists(self.db_path))


if __name__ == '__main__':
    unittest.main()
