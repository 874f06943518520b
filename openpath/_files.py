# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import shlex
from pathlib import Path
from typing import Any
from typing import Collection
from typing import Mapping

from jinja2 import Environment
from jinja2 import FileSystemLoader
from jinja2 import StrictUndefined

from openpath._core import Outcome
from openpath._core import Step
from openpath._facts import HostFacts
from openpath._host import Host

files_dir = Path(__file__).with_name('files')

_jinja_env = Environment(
    loader=FileSystemLoader(files_dir),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
    )


def render_template(name: str, variables: Mapping[str, Any]) -> bytes:
    """Render a template from the files directory; fail on any undefined variable.

    >>> render_template('e-mission-server.nginx.http.j2', {})  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    ...
    jinja2.exceptions.UndefinedError: 'inventory_hostname' is undefined
    """
    return _jinja_env.get_template(name).render(variables).encode('utf8')


def install_command(dest: str, mode: int) -> str:
    """Write stdin to dest with given permissions, make dirs if needed.

    >>> print(install_command('/etc/nginx/sites-available/e-mission-server', 0o400))
    install -D -m 400 /dev/stdin /etc/nginx/sites-available/e-mission-server
    >>> print(install_command('/root/my dir/start.sh', 0o700))
    install -D -m 700 /dev/stdin '/root/my dir/start.sh'
    """
    return f'install -D -m {mode:o} /dev/stdin {shlex.quote(dest)}'


class _Deploy(Step):
    """Overwrite the file. Report a change only if content or mode differ."""

    def __init__(self, content: bytes, dest: str, mode: int, notify: Collection[str]):
        super().__init__(notify)
        self._content = content
        self._dest = dest
        self._mode = mode

    def is_satisfied(self, facts: HostFacts):
        if facts.file_bytes(self._dest) != self._content:
            return False
        return facts.file_mode(self._dest) == self._mode

    def apply(self, host: Host):
        host.run(install_command(self._dest, self._mode), input=self._content)
        return Outcome.CHANGED


class DeployFile(_Deploy):

    def __init__(self, src: str, dest: str, mode: int, notify: Collection[str] = ()):
        self._src = src
        super().__init__(files_dir.joinpath(src).read_bytes(), dest, mode, notify)

    def __repr__(self):
        return f'{DeployFile.__name__}({self._src!r}, {self._dest!r}, 0o{self._mode:o})'


class DeployTemplate(_Deploy):

    def __init__(
            self,
            src: str,
            dest: str,
            variables: Mapping[str, Any],
            mode: int,
            notify: Collection[str] = (),
            ):
        self._src = src
        super().__init__(render_template(src, variables), dest, mode, notify)

    def __repr__(self):
        return f'{DeployTemplate.__name__}({self._src!r}, {self._dest!r}, 0o{self._mode:o})'


class EnsureLine(Step):
    """Make sure the line is present in the file. Create the file if needed."""

    def __init__(self, path: str, line: str, mode: int):
        super().__init__()
        self._path = path
        self._line = line
        self._mode = mode

    def __repr__(self):
        return f'{EnsureLine.__name__}({self._path!r}, {self._line!r})'

    def is_satisfied(self, facts: HostFacts):
        data = facts.file_bytes(self._path)
        if data is None:
            return False
        # Bytes: other lines of the file may be in any encoding.
        return self._line.encode() in data.splitlines()

    def apply(self, host: Host):
        r = host.run_still(f'cat {shlex.quote(self._path)}')
        existing = r.stdout if r.returncode == 0 else b''
        if existing and not existing.endswith(b'\n'):
            existing += b'\n'
        content = existing + self._line.encode() + b'\n'
        host.run(install_command(self._path, self._mode), input=content)
        return Outcome.CHANGED


class EnsureSymlink(Step):

    def __init__(self, src: str, dest: str, notify: Collection[str] = ()):
        super().__init__(notify)
        self._src = src
        self._dest = dest

    def __repr__(self):
        return f'{EnsureSymlink.__name__}({self._src!r}, {self._dest!r})'

    def is_satisfied(self, facts: HostFacts):
        return facts.symlink_target(self._dest) == self._src

    def apply(self, host: Host):
        host.run(f'ln -sfn {shlex.quote(self._src)} {shlex.quote(self._dest)}')
        return Outcome.CHANGED
