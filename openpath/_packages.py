# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import shlex
from typing import Collection
from typing import Sequence

from openpath._core import Outcome
from openpath._core import Step
from openpath._errors import ChecksumOrCommandError
from openpath._errors import NetworkFetchError
from openpath._errors import PackageManagerError
from openpath._facts import HostFacts
from openpath._host import Host


class EnsurePackage(Step):

    def __init__(self, names: Sequence[str], notify: Collection[str] = ()):
        super().__init__(notify)
        self._names = list(names)

    def __repr__(self):
        return f'{EnsurePackage.__name__}({self._names!r})'

    def is_satisfied(self, facts: HostFacts):
        return all(facts.package_installed(name) for name in self._names)

    def apply(self, host: Host):
        names = shlex.join(self._names)
        host.run(
            f'DEBIAN_FRONTEND=noninteractive apt-get install -y {names}',
            error=PackageManagerError)
        return Outcome.CHANGED


class UpdateAptCache(Step):
    """Refresh package lists unless they are fresh enough.

    Lists are stale if older than valid_time_sec or older than any of
    the watched files, e.g. a repository that has just been added.
    """

    _cache = '/var/cache/apt/pkgcache.bin'

    def __init__(self, valid_time_sec: int = 3600, watched: Sequence[str] = ()):
        super().__init__()
        self._valid_time_sec = valid_time_sec
        self._watched = list(watched)

    def __repr__(self):
        return f'{UpdateAptCache.__name__}({self._valid_time_sec!r}, {self._watched!r})'

    def is_satisfied(self, facts: HostFacts):
        updated_at = facts.mtime(self._cache)
        if updated_at is None:
            return False
        if facts.now() - updated_at >= self._valid_time_sec:
            return False
        for path in self._watched:
            modified_at = facts.mtime(path)
            if modified_at is not None and modified_at > updated_at:
                _logger.info("%s: %s is newer than package lists", facts.host_name, path)
                return False
        return True

    def apply(self, host: Host):
        host.run('apt-get update', error=PackageManagerError)
        return Outcome.CHANGED


class EnsureKeyTrusted(Step):
    """Import a repository signing key. Never refresh a key already in place.

    The ASCII-armored key is downloaded to a temporary file on the host,
    converted to the binary keyring format and the temporary file is
    removed, even if the conversion fails.
    """

    def __init__(self, url: str, dest: str):
        super().__init__()
        self._url = url
        self._dest = dest

    def __repr__(self):
        return f'{EnsureKeyTrusted.__name__}({self._url!r}, {self._dest!r})'

    def is_satisfied(self, facts: HostFacts):
        return facts.path_exists(self._dest)

    def apply(self, host: Host):
        tmp = host.run('mktemp --suffix=.asc').stdout.decode().strip()
        try:
            host.run(
                f'curl -fsSL -o {shlex.quote(tmp)} {shlex.quote(self._url)}',
                error=NetworkFetchError)
            host.run(
                f'gpg --batch --yes --dearmor -o {shlex.quote(self._dest)} {shlex.quote(tmp)}',
                error=ChecksumOrCommandError)
        finally:
            host.run(f'rm -f {shlex.quote(tmp)}')
        return Outcome.CHANGED


class EnsureSnap(Step):

    def __init__(self, name: str, classic: bool = False):
        super().__init__()
        self._name = name
        self._classic = classic

    def __repr__(self):
        return f'{EnsureSnap.__name__}({self._name!r}, classic={self._classic!r})'

    def is_satisfied(self, facts: HostFacts):
        return facts.snap_installed(self._name)

    def apply(self, host: Host):
        classic = '--classic ' if self._classic else ''
        host.run(f'snap install {classic}{shlex.quote(self._name)}', error=PackageManagerError)
        return Outcome.CHANGED


_logger = logging.getLogger(__name__)
