# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import unittest

from jinja2 import UndefinedError

from openpath._core import Outcome
from openpath._core import Provisioner
from openpath._files import DeployFile
from openpath._files import DeployTemplate
from openpath._files import EnsureLine
from openpath._files import EnsureSymlink
from openpath._files import files_dir
from openpath.tests._fake_host import FakeHost

_variables = {
    'inventory_hostname': 'openpath.example.org',
    'admin_email': 'admin@example.org',
    'app_dir': '/root/e-mission-server',
    'app_port': '8080',
    }


class TestDeploy(unittest.TestCase):

    def setUp(self):
        self._host = FakeHost()

    def _run(self, step):
        [(_, outcome)] = Provisioner(self._host, []).run([step]).results
        return outcome

    def test_deploy_file(self):
        step = DeployFile('start_analysis.sh', '/root/start_analysis.sh', 0o700)
        self.assertEqual(self._run(step), Outcome.CHANGED)
        expected = files_dir.joinpath('start_analysis.sh').read_bytes()
        self.assertEqual(self._host.read_file('/root/start_analysis.sh'), expected)
        self.assertEqual(self._host.files['/root/start_analysis.sh'].mode, 0o700)
        self.assertEqual(self._run(step), Outcome.UNCHANGED)

    def test_content_changed_on_host(self):
        step = DeployFile('start_analysis.sh', '/root/start_analysis.sh', 0o700)
        self._host.put_file('/root/start_analysis.sh', b'#!/bin/sh\necho edited by hand\n', 0o700)
        self.assertEqual(self._run(step), Outcome.CHANGED)

    def test_mode_changed_on_host(self):
        step = DeployFile('start_analysis.sh', '/root/start_analysis.sh', 0o700)
        self._run(step)
        self._host.files['/root/start_analysis.sh'].mode = 0o755
        self.assertEqual(self._run(step), Outcome.CHANGED)
        self.assertEqual(self._host.files['/root/start_analysis.sh'].mode, 0o700)

    def test_template(self):
        step = DeployTemplate(
            'e-mission-server.service', '/etc/systemd/system/e-mission-server.service',
            _variables, 0o400)
        self.assertEqual(self._run(step), Outcome.CHANGED)
        unit = self._host.read_file('/etc/systemd/system/e-mission-server.service').decode()
        self.assertIn('WorkingDirectory=/root/e-mission-server\n', unit)
        self.assertIn('openpath.example.org', unit)
        self.assertEqual(self._run(step), Outcome.UNCHANGED)

    def test_template_undefined_variable(self):
        with self.assertRaises(UndefinedError):
            DeployTemplate('e-mission-server.nginx.https.j2', '/tmp/x', {'app_port': '8080'}, 0o400)
        self.assertEqual(self._host.commands, [])


class TestEnsureLine(unittest.TestCase):

    _path = '/etc/apt/sources.list.d/mongodb-org-8.0.list'
    _line = 'deb [ signed-by=/usr/share/keyrings/mongodb-server-8.0.gpg ] https://repo.mongodb.org/apt/ubuntu noble/mongodb-org/8.0 multiverse'

    def test_create_file(self):
        host = FakeHost()
        Provisioner(host, []).run([EnsureLine(self._path, self._line, 0o400)])
        self.assertEqual(host.read_file(self._path), self._line.encode() + b'\n')
        self.assertEqual(host.files[self._path].mode, 0o400)

    def test_append_once(self):
        host = FakeHost()
        host.put_file(self._path, b'# Managed elsewhere')
        step = EnsureLine(self._path, self._line, 0o400)
        Provisioner(host, []).run([step])
        report = Provisioner(host, []).run([step])
        self.assertEqual(report.changed(), [])
        self.assertEqual(host.read_file(self._path), b'# Managed elsewhere\n' + self._line.encode() + b'\n')

    def test_other_lines_not_utf8(self):
        host = FakeHost()
        foreign = b'# Z\xfcrich mirror\ndeb http://ch.archive.ubuntu.com/ubuntu noble main\n'
        host.put_file(self._path, foreign)
        step = EnsureLine(self._path, self._line, 0o400)
        Provisioner(host, []).run([step])
        self.assertEqual(host.read_file(self._path), foreign + self._line.encode() + b'\n')
        self.assertEqual(Provisioner(host, []).run([step]).changed(), [])


class TestEnsureSymlink(unittest.TestCase):

    def test_replace_wrong_target(self):
        host = FakeHost()
        host.symlinks['/usr/bin/certbot'] = '/usr/local/bin/certbot'
        step = EnsureSymlink('/snap/bin/certbot', '/usr/bin/certbot')
        Provisioner(host, []).run([step])
        self.assertEqual(host.symlinks['/usr/bin/certbot'], '/snap/bin/certbot')
        self.assertEqual(Provisioner(host, []).run([step]).changed(), [])


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
