# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import shlex
from typing import Optional
from typing import Sequence

from openpath._errors import ChecksumOrCommandError
from openpath._host import Host


class HostFacts:
    """Live view of the host state.

    Each call asks the host again. Nothing is remembered between calls:
    a step may change what the previous one has read.
    """

    def __init__(self, host: Host):
        self._host = host

    @property
    def host_name(self) -> str:
        return self._host.name

    def path_exists(self, path: str) -> bool:
        return self._host.run_still(f'test -e {shlex.quote(path)}').returncode == 0

    def is_dir(self, path: str) -> bool:
        return self._host.run_still(f'test -d {shlex.quote(path)}').returncode == 0

    def file_bytes(self, path: str) -> Optional[bytes]:
        r = self._host.run_still(f'cat {shlex.quote(path)}')
        if r.returncode != 0:
            return None
        return r.stdout

    def file_mode(self, path: str) -> Optional[int]:
        r = self._host.run_still(f'stat -c %a {shlex.quote(path)}')
        if r.returncode != 0:
            return None
        return int(r.stdout.decode().strip(), 8)

    def mtime(self, path: str) -> Optional[int]:
        r = self._host.run_still(f'stat -c %Y {shlex.quote(path)}')
        if r.returncode != 0:
            return None
        return int(r.stdout.decode().strip())

    def now(self) -> int:
        return int(self._host.run('date +%s').stdout.decode().strip())

    def symlink_target(self, path: str) -> Optional[str]:
        r = self._host.run_still(f'readlink {shlex.quote(path)}')
        if r.returncode != 0:
            return None
        return r.stdout.decode().rstrip('\n')

    def package_installed(self, name: str) -> bool:
        r = self._host.run_still(f'dpkg-query -W -f=\'${{Status}}\' {shlex.quote(name)}')
        return r.returncode == 0 and r.stdout.decode().strip() == 'install ok installed'

    def snap_installed(self, name: str) -> bool:
        return self._host.run_still(f'snap list {shlex.quote(name)}').returncode == 0

    def service_active(self, name: str) -> bool:
        r = self._host.run_still(f'systemctl is-active {shlex.quote(name)}')
        return r.stdout.decode().strip() == 'active'

    def service_enabled(self, name: str) -> bool:
        r = self._host.run_still(f'systemctl is-enabled {shlex.quote(name)}')
        return r.stdout.decode().strip() == 'enabled'

    def crontab(self, user: str) -> str:
        command = f'crontab -u {shlex.quote(user)} -l'
        r = self._host.run_still(command)
        if r.returncode == 0:
            return r.stdout.decode()
        if b'no crontab for' in r.stderr:
            return ''
        raise ChecksumOrCommandError(command, r.returncode, r.stdout, r.stderr)

    def firewall_active(self) -> bool:
        r = self._host.run_still('ufw status')
        if r.returncode != 0:
            return False
        [first_line, *_] = r.stdout.decode().splitlines() or ['']
        return first_line.strip() == 'Status: active'

    def firewall_rules(self) -> Sequence[Sequence[str]]:
        """Rules added by user, whether the firewall is enabled or not."""
        r = self._host.run_still('ufw show added')
        if r.returncode != 0:
            return []
        rules = []
        for line in r.stdout.decode().splitlines():
            if line.startswith('ufw '):
                [_ufw, *rule] = shlex.split(line)
                rules.append(rule)
        return rules
