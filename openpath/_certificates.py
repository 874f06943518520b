# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""TLS certificate for the managed domain, issued through the reverse proxy.

Let's Encrypt proves the domain ownership by an HTTP request to the domain.
Hence, until the certificate is issued, nginx must serve the domain via HTTP.
After that, the HTTPS configuration replaces the HTTP one.

See: https://eff-certbot.readthedocs.io/en/stable/using.html#nginx
"""
import logging
import shlex
from enum import Enum
from typing import Any
from typing import Iterator
from typing import Mapping
from typing import Optional
from typing import Type

from openpath._core import Outcome
from openpath._core import Step
from openpath._core import StepSource
from openpath._errors import ChecksumOrCommandError
from openpath._errors import NetworkFetchError
from openpath._errors import ProvisioningError
from openpath._errors import ValidationError
from openpath._facts import HostFacts
from openpath._files import DeployTemplate
from openpath._files import EnsureSymlink
from openpath._files import render_template
from openpath._host import Host
from openpath._packages import EnsureSnap
from openpath._services import RestartService


class CertificateState(Enum):
    NO_CERT = 'no certificate'
    CERT_ISSUED = 'certificate issued'

    @classmethod
    def read(cls, facts: HostFacts, certificate_path: str) -> 'CertificateState':
        if facts.path_exists(certificate_path):
            return cls.CERT_ISSUED
        return cls.NO_CERT


def certificate_path(domain: str) -> str:
    """Full chain issued by certbot for the domain.

    >>> certificate_path('openpath.example.org')
    '/etc/letsencrypt/live/openpath.example.org/fullchain.pem'
    """
    return f'/etc/letsencrypt/live/{domain}/fullchain.pem'


class SiteVariant(Enum):
    HTTP = 'http'
    HTTPS = 'https'


class ReverseProxySite:
    """The nginx site: one file in sites-available, enabled by a symlink.

    Both variants are rendered to the same file, so at most one of them
    is active at any moment.
    """

    def __init__(self, name: str, variables: Mapping[str, Any]):
        self.name = name
        self.available_path = f'/etc/nginx/sites-available/{name}'
        self.enabled_path = f'/etc/nginx/sites-enabled/{name}'
        self._variables = variables

    def __repr__(self):
        return f'{ReverseProxySite.__name__}({self.name!r})'

    def _template(self, variant: SiteVariant) -> str:
        return f'{self.name}.nginx.{variant.value}.j2'

    def deploy(self, variant: SiteVariant, notify=()) -> DeployTemplate:
        return DeployTemplate(
            self._template(variant), self.available_path, self._variables, 0o400, notify=notify)

    def enable(self, notify=()) -> EnsureSymlink:
        return EnsureSymlink(self.available_path, self.enabled_path, notify=notify)

    def active_variant(self, facts: HostFacts) -> Optional[SiteVariant]:
        if facts.symlink_target(self.enabled_path) != self.available_path:
            return None
        deployed = facts.file_bytes(self.available_path)
        for variant in SiteVariant:
            if deployed == render_template(self._template(variant), self._variables):
                return variant
        return None


class IssueCertificate(Step):
    """Obtain the certificate via the nginx plugin unless it's already there.

    The file check is done right before issuance, whatever was known
    about the certificate earlier in the run.
    """

    def __init__(self, domain: str, email: str, notify=()):
        super().__init__(notify)
        self._domain = domain
        self._email = email
        self.attempted = False

    def __repr__(self):
        return f'{IssueCertificate.__name__}({self._domain!r}, {self._email!r})'

    def is_satisfied(self, facts: HostFacts):
        return facts.path_exists(certificate_path(self._domain))

    def apply(self, host: Host):
        self.attempted = True
        command = ' '.join([
            'certbot', 'certonly', '--nginx',
            '--non-interactive', '--agree-tos',
            '-m', shlex.quote(self._email),
            '--domain', shlex.quote(self._domain),
            ])
        r = host.run_still(command)
        if r.returncode != 0:
            error = _classify_certbot_failure(r.stderr)
            _logger.error(
                "%s: certbot failed: %s", host.name, r.stderr.decode(errors='backslashreplace'))
            raise error(command, r.returncode, r.stdout, r.stderr)
        return Outcome.CHANGED


def _classify_certbot_failure(stderr: bytes) -> Type[ProvisioningError]:
    """Tell a failed ownership check from a network problem.

    >>> _classify_certbot_failure(b'Some challenges have failed.')
    <class 'openpath._errors.ValidationError'>
    >>> _classify_certbot_failure(b'Type: unauthorized\\nDetail: Invalid response from http://...')
    <class 'openpath._errors.ValidationError'>
    >>> _classify_certbot_failure(b'Failed to establish a new connection: [Errno 101] Network is unreachable')
    <class 'openpath._errors.NetworkFetchError'>
    >>> _classify_certbot_failure(b'too many certificates (5) already issued for this exact set of domains')
    <class 'openpath._errors.ChecksumOrCommandError'>
    """
    text = stderr.decode(errors='backslashreplace').lower()
    if any(marker in text for marker in _validation_markers):
        return ValidationError
    if any(marker in text for marker in _network_markers):
        return NetworkFetchError
    return ChecksumOrCommandError


_validation_markers = [
    'some challenges have failed',
    'unauthorized',
    'dns problem',
    'challenge failed',
    ]
_network_markers = [
    'failed to establish a new connection',
    'temporary failure in name resolution',
    'connection refused',
    'timed out',
    'network is unreachable',
    ]


class CertificateBootstrap(StepSource):
    """Move the site from the HTTP configuration to HTTPS.

    Without a certificate: HTTP configuration is enabled and nginx is
    restarted immediately, for the challenge to reach it. Then the
    certificate is issued. If it's there afterwards, or was there from
    the start, HTTPS configuration replaces the HTTP one.

    If issuance fails, the run stops with the HTTP configuration active.
    It's safe: the site is still served, without TLS.
    """

    def __init__(self, site: ReverseProxySite, domain: str, email: str, restart_handler: str):
        self._site = site
        self._domain = domain
        self._email = email
        self._restart_handler = restart_handler

    def __repr__(self):
        return f'{CertificateBootstrap.__name__}({self._site!r}, {self._domain!r})'

    def expand(self, facts: HostFacts) -> Iterator[Step]:
        path = certificate_path(self._domain)
        state = CertificateState.read(facts, path)
        _logger.info("%s: %s: %s", facts.host_name, self._domain, state.value)
        if state is CertificateState.NO_CERT:
            yield self._site.deploy(SiteVariant.HTTP)
            yield self._site.enable()
            yield RestartService('nginx', precheck='nginx -t')
        yield EnsureSnap('certbot', classic=True)
        yield EnsureSymlink('/snap/bin/certbot', '/usr/bin/certbot')
        issue = IssueCertificate(self._domain, self._email, notify=[self._restart_handler])
        yield issue
        state = CertificateState.read(facts, path)
        if state is CertificateState.CERT_ISSUED:
            yield self._site.deploy(SiteVariant.HTTPS, notify=[self._restart_handler])
            yield self._site.enable(notify=[self._restart_handler])
        elif not issue.attempted:
            # Check mode: nothing was issued, nothing to switch to yet.
            _logger.info("%s: %s: HTTPS would follow issuance", facts.host_name, self._domain)
        else:
            _logger.warning("%s: %s: %s after issuance", facts.host_name, self._domain, state.value)


_logger = logging.getLogger(__name__)
