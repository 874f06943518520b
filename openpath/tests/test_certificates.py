# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import unittest

from openpath._certificates import CertificateBootstrap
from openpath._certificates import CertificateState
from openpath._certificates import ReverseProxySite
from openpath._certificates import SiteVariant
from openpath._certificates import certificate_path
from openpath._core import Provisioner
from openpath._core import StepFailed
from openpath._errors import NetworkFetchError
from openpath._errors import ValidationError
from openpath._facts import HostFacts
from openpath._services import RestartOnChange
from openpath.tests._fake_host import FakeHost

_domain = 'openpath.example.org'
_variables = {
    'inventory_hostname': _domain,
    'admin_email': 'admin@example.org',
    'app_port': '8080',
    }


class TestCertificateBootstrap(unittest.TestCase):

    def setUp(self):
        self._host = FakeHost(_domain)
        self._host.packages.add('nginx')
        self._host.services['nginx'] = True
        self._host.dirs.add('/etc/nginx/sites-available')
        self._site = ReverseProxySite('e-mission-server', _variables)
        self._facts = HostFacts(self._host)

    def _provision(self):
        bootstrap = CertificateBootstrap(self._site, _domain, 'admin@example.org', 'Restart nginx')
        provisioner = Provisioner(self._host, [RestartOnChange('nginx', precheck='nginx -t')])
        return provisioner.run([bootstrap])

    def _site_deployments(self):
        return [c for c in self._host.commands if c.startswith('install ') and 'sites-available' in c]

    def test_issue_and_switch_to_https(self):
        self.assertIsNone(self._site.active_variant(self._facts))
        report = self._provision()
        self.assertEqual(CertificateState.read(self._facts, certificate_path(_domain)), CertificateState.CERT_ISSUED)
        self.assertEqual(self._site.active_variant(self._facts), SiteVariant.HTTPS)
        self.assertEqual(len(self._site_deployments()), 2)
        # Once for the challenge, once at the end of the run.
        self.assertEqual(self._host.restarts['nginx'], 2)
        self.assertEqual(report.fired, ['Restart nginx'])
        self.assertIn(
            'certbot certonly --nginx --non-interactive --agree-tos'
            ' -m admin@example.org --domain openpath.example.org',
            self._host.commands)

    def test_nginx_checked_before_restart(self):
        self._provision()
        checks = [i for i, c in enumerate(self._host.commands) if c == 'nginx -t']
        restarts = [i for i, c in enumerate(self._host.commands) if c == 'systemctl restart nginx']
        self.assertEqual(len(checks), 2)
        self.assertEqual([i + 1 for i in checks], restarts)

    def test_second_run(self):
        self._provision()
        self._host.commands.clear()
        report = self._provision()
        self.assertEqual(report.changed(), [])
        self.assertEqual(report.fired, [])
        self.assertEqual(self._host.restarts['nginx'], 2)
        self.assertFalse(any(c.startswith('certbot ') for c in self._host.commands))
        self.assertEqual(self._site.active_variant(self._facts), SiteVariant.HTTPS)

    def test_certificate_already_present(self):
        self._host.put_file(certificate_path(_domain), b'-----BEGIN CERTIFICATE-----\n')
        self._provision()
        self.assertEqual(len(self._site_deployments()), 1)
        self.assertEqual(self._host.restarts['nginx'], 1)
        self.assertEqual(self._site.active_variant(self._facts), SiteVariant.HTTPS)
        self.assertFalse(any(c.startswith('certbot ') for c in self._host.commands))

    def test_challenge_failed(self):
        self._host.fail('certbot certonly', 1, (
            b'Certbot failed to authenticate some domains (authenticator: nginx).\n'
            b'  Type:   unauthorized\n'
            b'  Detail: Invalid response from http://openpath.example.org/.well-known/acme-challenge/x\n'
            b'Some challenges have failed.\n'
            ))
        with self.assertRaises(StepFailed) as ctx:
            self._provision()
        self.assertIsInstance(ctx.exception.error, ValidationError)
        self.assertEqual(self._site.active_variant(self._facts), SiteVariant.HTTP)
        self.assertEqual(self._host.restarts['nginx'], 1)

    def test_network_failure(self):
        self._host.fail('certbot certonly', 1, (
            b'An unexpected error occurred:\n'
            b'requests.exceptions.ConnectionError: Failed to establish a new connection:'
            b' [Errno -3] Temporary failure in name resolution\n'
            ))
        with self.assertRaises(StepFailed) as ctx:
            self._provision()
        self.assertIsInstance(ctx.exception.error, NetworkFetchError)

    def test_check_mode(self):
        bootstrap = CertificateBootstrap(self._site, _domain, 'admin@example.org', 'Restart nginx')
        provisioner = Provisioner(self._host, [RestartOnChange('nginx')], check=True)
        with self.assertLogs('openpath._certificates', logging.DEBUG) as logs:
            report = provisioner.run([bootstrap])
        self.assertEqual([r.levelname for r in logs.records if r.levelno >= logging.WARNING], [])
        self.assertEqual(report.changed()[-1], "IssueCertificate('openpath.example.org', 'admin@example.org')")
        self.assertEqual(self._site_deployments(), [])
        self.assertFalse(any(c.startswith('certbot ') for c in self._host.commands))

    def test_retry_after_failure(self):
        failing = FakeHost(_domain)
        failing.services['nginx'] = True
        failing.fail('certbot certonly', 1, b'Some challenges have failed.\n')
        with self.assertRaises(StepFailed):
            Provisioner(failing, [RestartOnChange('nginx')]).run([
                CertificateBootstrap(self._site, _domain, 'admin@example.org', 'Restart nginx'),
                ])
        self._host.files.update(failing.files)
        self._host.symlinks.update(failing.symlinks)
        self._host.snaps.update(failing.snaps)
        self._provision()
        # HTTP is still there: the restart for the challenge happens again.
        self.assertEqual(self._host.restarts['nginx'], 2)
        self.assertEqual(self._site.active_variant(self._facts), SiteVariant.HTTPS)


class TestReverseProxySite(unittest.TestCase):

    def test_foreign_configuration(self):
        host = FakeHost(_domain)
        site = ReverseProxySite('e-mission-server', _variables)
        host.put_file(site.available_path, b'server { listen 8000; }\n', 0o400)
        host.symlinks[site.enabled_path] = site.available_path
        self.assertIsNone(site.active_variant(HostFacts(host)))

    def test_not_enabled(self):
        host = FakeHost(_domain)
        site = ReverseProxySite('e-mission-server', _variables)
        Provisioner(host, []).run([site.deploy(SiteVariant.HTTP)])
        self.assertIsNone(site.active_variant(HostFacts(host)))
        Provisioner(host, []).run([site.enable()])
        self.assertEqual(site.active_variant(HostFacts(host)), SiteVariant.HTTP)


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)7s %(name)s %(message).5000s",
        )
    unittest.main()
