# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import fnmatch
import logging
import re
from configparser import ConfigParser
from pathlib import Path
from typing import Mapping
from typing import Sequence


def read_settings(host: str, *paths: Path) -> Mapping[str, str]:
    """Read settings for the host and resolve overrides according to versions.

    Section names are host masks, like "[*.example.org]".
    Optionally add ";v123" to sections like "[*.example.org;v45]".
    If not specified, "v0" is assumed. "[defaults]" matches any host.
    Higher versions override lower versions. Among sections of the same
    version, later files override earlier ones.
    """
    config_parts = []
    for path_i, path in enumerate(paths):
        config_parser = _parser()
        config_parser.read(path)
        for section_i, section in enumerate(config_parser.sections()):
            mask, version = _parse_section_header(section)
            if fnmatch.fnmatch(host, mask):
                _logger.debug("Config %s: section %s: read for %s", path, section, host)
                items = config_parser.items(section)
                config_parts.append((version, path_i, section_i, items))
            else:
                _logger.debug("Config %s: section %s: skip for %s", path, section, host)
    config_parts.sort(key=lambda part: part[:3])
    config = {}
    for _version, _path_i, _section_i, items in config_parts:
        config.update(items)
    return config


def _parse_section_header(section):
    """Split section name to a host mask and a version.

    >>> _parse_section_header('defaults')
    ('*', 0)
    >>> _parse_section_header('*.example.org;v2')
    ('*.example.org', 2)
    >>> _parse_section_header('*.example.org;x2')
    Traceback (most recent call last):
    ...
    ValueError: Unknown x2 in *.example.org;x2
    """
    if section == 'defaults':
        return '*', 0
    else:
        mask, _semicolon, extra = section.partition(';')
        if not extra:
            return mask, 0
        elif extra.startswith('v'):
            try:
                return mask, int(extra[1:])
            except ValueError:
                raise ValueError(f"Cannot parse {extra} in {section}")
        else:
            raise ValueError(f"Unknown {extra} in {section}")


def _parser():
    # Values hold shell commands and URLs: "%" must be taken literally.
    return ConfigParser(interpolation=None)


class HostTarget:
    """Host under management: its domain name and everything configured for it."""

    def __init__(self, inventory_hostname: str, settings: Mapping[str, str]):
        if not _hostname_re.fullmatch(inventory_hostname):
            raise ValueError(f"Not a domain name: {inventory_hostname!r}")
        try:
            admin_email = settings['admin_email']
        except KeyError:
            raise ValueError(f"{inventory_hostname}: admin_email is not set")
        if not _email_re.fullmatch(admin_email):
            raise ValueError(f"{inventory_hostname}: not an email: {admin_email!r}")
        self.inventory_hostname = inventory_hostname
        self.admin_email = admin_email
        self.settings = settings

    def __repr__(self):
        return f'{HostTarget.__name__}({self.inventory_hostname!r})'

    def ssh_user(self) -> str:
        return self.settings.get('ssh_user', 'root')

    def variables(self) -> Mapping[str, str]:
        """Variables for templates."""
        return {
            **self.settings,
            'inventory_hostname': self.inventory_hostname,
            'admin_email': self.admin_email,
            }


_hostname_re = re.compile(r'(?=.{1,253}$)([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)*[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?')
_email_re = re.compile(r'[^@\s]+@[^@\s]+\.[^@\s]+')


def read_inventory(inventory: Path, settings_files: Sequence[Path] = ()) -> Sequence[HostTarget]:
    """Read hosts and their variables.

    Every section except "defaults" is a host. Host variables override
    the inventory defaults, which override the settings files.
    """
    if not inventory.exists():
        raise FileNotFoundError(f"Inventory not found: {inventory}")
    parser = _parser()
    parser.read(inventory)
    hosts = [s for s in parser.sections() if s != 'defaults']
    if not hosts:
        raise ValueError(f"No hosts in {inventory}")
    defaults = dict(parser.items('defaults')) if parser.has_section('defaults') else {}
    targets = []
    for host in hosts:
        settings = {
            **read_settings(host, *settings_files),
            **defaults,
            **dict(parser.items(host)),
            }
        targets.append(HostTarget(host, settings))
    return targets


default_settings_files = [
    Path(__file__).with_name('config.ini'),
    Path('~/.config/openpath.ini').expanduser(),
    ]

_logger = logging.getLogger(__name__)
