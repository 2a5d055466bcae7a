"""End-to-end tests for the lockbuddy command line."""

import json
import os
import subprocess
import sys
import tempfile
import unittest

LOCKFILE = """\
lockfileVersion: '9.0'
importers:
  .:
    dependencies:
      lodash:
        specifier: ^4.17.0
        version: 4.17.21
  apps/web:
    dependencies:
      lodash:
        specifier: 4.17.20
        version: 4.17.20
      react:
        specifier: ^18.2.0
        version: 18.2.0
snapshots:
  lodash@4.17.21: {}
  lodash@4.17.20: {}
  react@18.2.0: {}
"""


class TestCli(unittest.TestCase):
    """Runs python -m lockbuddy against a temporary lockfile."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.lockfile = os.path.join(self.tmp.name, 'pnpm-lock.yaml')
        with open(self.lockfile, 'w') as f:
            f.write(LOCKFILE)

    def tearDown(self):
        self.tmp.cleanup()

    def run_cli(self, *args):
        return subprocess.run(
            [sys.executable, '-m', 'lockbuddy', *args],
            capture_output=True,
            text=True,
            cwd=os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        )

    def test_duplicates_tree(self):
        result = self.run_cli('duplicates', '-f', self.lockfile, '--lockfile-only')

        self.assertEqual(result.returncode, 0, result.stderr)
        self.assertIn('lodash has 2 instances:', result.stdout)
        self.assertIn('lodash@4.17.20 (dependencies)', result.stdout)
        self.assertNotIn('react', result.stdout)

    def test_duplicates_json(self):
        result = self.run_cli('dupes', '-f', self.lockfile, '--lockfile-only', '-o', 'json')

        self.assertEqual(result.returncode, 0, result.stderr)
        data = json.loads(result.stdout)
        self.assertEqual([g['packageName'] for g in data], ['lodash'])

    def test_exit_code(self):
        result = self.run_cli('duplicates', '-f', self.lockfile, '--lockfile-only', '--exit-code')

        self.assertEqual(result.returncode, 1)

    def test_unknown_package(self):
        result = self.run_cli('duplicates', 'vue', '-f', self.lockfile, '--lockfile-only')

        self.assertEqual(result.returncode, 1)
        self.assertIn('Package(s) not found in lockfile: vue', result.stderr)

    def test_unknown_project(self):
        result = self.run_cli('duplicates', '-f', self.lockfile, '--project', 'apps/nope', '--lockfile-only')

        self.assertEqual(result.returncode, 1)
        self.assertIn('Project(s) not found in lockfile: apps/nope', result.stderr)

    def test_per_project(self):
        result = self.run_cli('duplicates', '-f', self.lockfile, '--lockfile-only', '--per-project', '--all')

        self.assertEqual(result.returncode, 0, result.stderr)
        self.assertIn('apps/web:', result.stdout)
        self.assertIn('  react has 1 instance:', result.stdout)

    def test_list(self):
        result = self.run_cli('list', 'lodash', '-f', self.lockfile, '-o', 'list')

        self.assertEqual(result.returncode, 0, result.stderr)
        self.assertIn('lodash@4.17.20 - importers > apps/web > dependencies > lodash (specifier: 4.17.20)',
                      result.stdout)

    def test_missing_lockfile(self):
        result = self.run_cli('list', 'lodash', '-f', os.path.join(self.tmp.name, 'missing.yaml'))

        self.assertEqual(result.returncode, 1)
        self.assertIn('Lockfile not found', result.stderr)


if __name__ == '__main__':
    unittest.main()
