# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import shlex

from openpath._core import Outcome
from openpath._core import Step
from openpath._facts import HostFacts
from openpath._host import Host


class EnsureCheckout(Step):
    """Clone the repository at the pinned revision, once.

    An existing directory is left as is: it's neither fetched again
    nor checked against the revision.
    """

    def __init__(self, repo_uri: str, dest: str, revision: str):
        super().__init__()
        self._repo_uri = repo_uri
        self._dest = dest
        self._revision = revision

    def __repr__(self):
        return f'{EnsureCheckout.__name__}({self._repo_uri!r}, {self._dest!r}, {self._revision!r})'

    def is_satisfied(self, facts: HostFacts):
        return facts.is_dir(self._dest)

    def apply(self, host: Host):
        dest = shlex.quote(self._dest)
        host.run(f'git clone -q {shlex.quote(self._repo_uri)} {dest}')
        host.run(f'git -C {dest} checkout -q {shlex.quote(self._revision)}')
        return Outcome.CHANGED


class EnsureBootstrapRan(Step):
    """Run a setup pipeline unless the marker it leaves behind exists.

    The marker is made by the setup itself. If the setup fails before
    making it, the next run tries again.
    """

    def __init__(self, marker: str, pipeline: str, chdir: str):
        super().__init__()
        self._marker = marker
        self._pipeline = pipeline
        self._chdir = chdir

    def __repr__(self):
        return f'{EnsureBootstrapRan.__name__}({self._marker!r}, {self._pipeline!r})'

    def is_satisfied(self, facts: HostFacts):
        return facts.path_exists(self._marker)

    def apply(self, host: Host):
        script = f'cd {shlex.quote(self._chdir)} && {self._pipeline}'
        host.run(f'bash -c {shlex.quote(script)}')
        return Outcome.CHANGED
