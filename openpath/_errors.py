# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/


class ProvisioningError(Exception):
    """Command run on a host exited with non-zero status.

    The text is the tool's own stderr, not reworded.

    >>> print(ProvisioningError('apt-get install -y nginx', 100, b'', b'E: Unable to locate package nginx\\n'))
    Command 'apt-get install -y nginx' died with exit status 100: E: Unable to locate package nginx
    """

    def __init__(self, command: str, returncode: int, stdout: bytes, stderr: bytes):
        super().__init__(command, returncode, stdout, stderr)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def __str__(self):
        stderr = self.stderr.decode(errors='backslashreplace').rstrip('\n')
        return f"Command {self.command!r} died with exit status {self.returncode}: {stderr}"


class PackageManagerError(ProvisioningError):
    pass


class NetworkFetchError(ProvisioningError):
    pass


class ValidationError(ProvisioningError):
    pass


class ChecksumOrCommandError(ProvisioningError):
    pass


class HostUnreachable(Exception):
    pass
