# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import shlex
from typing import Optional

from openpath._core import Handler
from openpath._core import Outcome
from openpath._core import Step
from openpath._facts import HostFacts
from openpath._host import Host


class EnsureServiceStarted(Step):

    def __init__(self, name: str):
        super().__init__()
        self._name = name

    def __repr__(self):
        return f'{EnsureServiceStarted.__name__}({self._name!r})'

    def is_satisfied(self, facts: HostFacts):
        return facts.service_active(self._name)

    def apply(self, host: Host):
        host.run(f'systemctl start {shlex.quote(self._name)}')
        return Outcome.CHANGED


class EnsureServiceEnabled(Step):
    """Start the service at boot. A unit file just deployed is picked up as is."""

    def __init__(self, name: str):
        super().__init__()
        self._name = name

    def __repr__(self):
        return f'{EnsureServiceEnabled.__name__}({self._name!r})'

    def is_satisfied(self, facts: HostFacts):
        return facts.service_enabled(self._name)

    def apply(self, host: Host):
        host.run(f'systemctl enable {shlex.quote(self._name)}')
        return Outcome.CHANGED


class RestartService(Step):
    """Restart right now, not at the end of the run.

    If precheck is given, it is run first, so that a broken configuration
    fails the step instead of taking the service down.
    """

    def __init__(self, name: str, precheck: Optional[str] = None):
        super().__init__()
        self._name = name
        self._precheck = precheck

    def __repr__(self):
        return f'{RestartService.__name__}({self._name!r})'

    def is_satisfied(self, facts: HostFacts):
        return False

    def apply(self, host: Host):
        _restart(host, self._name, self._precheck)
        return Outcome.CHANGED


class ReloadSystemd(Handler):

    def __init__(self):
        super().__init__('Reload systemd')

    def fire(self, host: Host):
        host.run('systemctl daemon-reload')


class RestartOnChange(Handler):

    def __init__(self, service: str, precheck: Optional[str] = None):
        super().__init__(f'Restart {service}')
        self._service = service
        self._precheck = precheck

    def fire(self, host: Host):
        _restart(host, self._service, self._precheck)


def _restart(host: Host, service: str, precheck: Optional[str]):
    if precheck is not None:
        host.run(precheck)
    host.run(f'systemctl restart {shlex.quote(service)}')
