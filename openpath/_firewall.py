# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import shlex

from openpath._core import Outcome
from openpath._core import Step
from openpath._facts import HostFacts
from openpath._host import Host


class AllowFirewallRule(Step):
    """Add an allowing ufw rule: a port or an application profile.

    Rules may be added before the firewall is enabled. Allow SSH first,
    then enable, not to lose the connection.
    """

    def __init__(self, port_or_profile: str):
        super().__init__()
        self._target = port_or_profile

    def __repr__(self):
        return f'{AllowFirewallRule.__name__}({self._target!r})'

    def is_satisfied(self, facts: HostFacts):
        return ['allow', self._target] in [list(rule) for rule in facts.firewall_rules()]

    def apply(self, host: Host):
        host.run(f'ufw allow {shlex.quote(self._target)}')
        return Outcome.CHANGED


class EnableFirewall(Step):

    def __repr__(self):
        return f'{EnableFirewall.__name__}()'

    def is_satisfied(self, facts: HostFacts):
        return facts.firewall_active()

    def apply(self, host: Host):
        host.run('ufw --force enable')
        return Outcome.CHANGED
