# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import shlex
import subprocess
from abc import ABCMeta
from abc import abstractmethod
from subprocess import CompletedProcess
from typing import Optional
from typing import Type

from openpath._errors import ChecksumOrCommandError
from openpath._errors import HostUnreachable
from openpath._errors import ProvisioningError


class Host(metaclass=ABCMeta):
    """Target machine, as seen through a shell.

    Commands are passed in their raw form, so that every line of the log
    can be copied and run by hand on the machine.
    """

    def __init__(self, name: str):
        self.name = name

    def __repr__(self):
        return f'{self.__class__.__name__}({self.name!r})'

    @abstractmethod
    def run_still(self, command: str, input: Optional[bytes] = None) -> CompletedProcess:  # noqa PyShadowingBuiltins
        """Run command, return the result whatever the exit status is."""
        pass

    def run(
            self,
            command: str,
            input: Optional[bytes] = None,  # noqa PyShadowingBuiltins
            error: Type[ProvisioningError] = ChecksumOrCommandError,
            ) -> CompletedProcess:
        r = self.run_still(command, input)
        if r.returncode != 0:
            _logger.error(
                "%s: exit status %d: %s: %s",
                self.name, r.returncode, command, r.stderr.decode(errors='backslashreplace'))
            raise error(command, r.returncode, r.stdout, r.stderr)
        return r


class LocalHost(Host):
    """The machine the provisioning runs on, for a host provisioning itself."""

    def run_still(self, command, input=None):  # noqa PyShadowingBuiltins
        _logger.info("%s: Run: %s", self.name, command)
        return subprocess.run(
            ['bash', '-c', command],
            input=input,
            # Provisioning never needs interactive input.
            stdin=subprocess.DEVNULL if input is None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            )


class SshHost(Host):

    def __init__(self, name: str, user: str = 'root'):
        super().__init__(name)
        self._user = user

    def __repr__(self):
        return f'{SshHost.__name__}({self.name!r}, {self._user!r})'

    def run_still(self, command, input=None):  # noqa PyShadowingBuiltins
        if self._user != 'root':
            command = 'sudo -H bash -c ' + shlex.quote(command)
        full_command = self._build(command)
        r = subprocess.run(
            full_command,
            input=input,
            # It may hang waiting for input when no input is actually needed.
            # See: https://github.com/PowerShell/Win32-OpenSSH/issues/1334
            stdin=subprocess.DEVNULL if input is None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            )
        if r.returncode == 255:
            raise HostUnreachable(f"{self.name}: {r.stderr.decode(errors='backslashreplace')}")
        return r

    def _build(self, command):
        # In BatchMode, execution fails if interactive input is required.
        full_command = ['ssh', '-oBatchMode=yes', '-l', self._user, self.name, command]
        _logger.info("%s: Run: %s", self.name, shlex.join(full_command))
        return full_command


_logger = logging.getLogger(__name__)
