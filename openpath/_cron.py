# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import shlex

from openpath._core import Outcome
from openpath._core import Step
from openpath._facts import HostFacts
from openpath._host import Host

_marker_prefix = '#openpath: '


def upsert_cron_entry(crontab: str, name: str, entry: str) -> str:
    """Put the named entry in place, replace the old one with the same name.

    Each entry is preceded by a marker comment holding its name.
    Other lines are kept as they are.

    >>> print(upsert_cron_entry('', 'Hourly', '0 * * * * /bin/true'), end='')
    #openpath: Hourly
    0 * * * * /bin/true
    >>> existing = 'MAILTO=""\\n#openpath: Hourly\\n0 * * * * /bin/false\\n@reboot /bin/sync\\n'
    >>> print(upsert_cron_entry(existing, 'Hourly', '0 * * * * /bin/true'), end='')
    MAILTO=""
    #openpath: Hourly
    0 * * * * /bin/true
    @reboot /bin/sync
    """
    marker = _marker_prefix + name
    lines = crontab.splitlines()
    if marker in lines:
        i = lines.index(marker)
        lines[i:i + 2] = [marker, entry]
    else:
        lines.extend([marker, entry])
    return ''.join(line + '\n' for line in lines)


class EnsureCronJob(Step):

    def __init__(self, name: str, job: str, minute: str = '*', hour: str = '*', user: str = 'root'):
        super().__init__()
        self._name = name
        self._entry = f'{minute} {hour} * * * {job}'
        self._user = user

    def __repr__(self):
        return f'{EnsureCronJob.__name__}({self._name!r}, {self._entry!r})'

    def is_satisfied(self, facts: HostFacts):
        crontab = facts.crontab(self._user)
        return upsert_cron_entry(crontab, self._name, self._entry) == crontab

    def apply(self, host: Host):
        user = shlex.quote(self._user)
        r = host.run_still(f'crontab -u {user} -l')
        crontab = r.stdout.decode() if r.returncode == 0 else ''
        updated = upsert_cron_entry(crontab, self._name, self._entry)
        _logger.debug("%s: New crontab for %s:\n%s", host.name, self._user, updated)
        host.run(f'crontab -u {user} -', input=updated.encode())
        return Outcome.CHANGED


_logger = logging.getLogger(__name__)
