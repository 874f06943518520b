# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""OpenPath server: e-mission server behind nginx, with MongoDB and TLS.

Run from a workstation:

    python -m openpath.e_mission_server inventory.ini

The inventory is an INI file. Each section is a host, named by the domain
it serves. The domain must resolve to the host: the certificate authority
checks it. "[defaults]" holds variables common to all hosts.

    [defaults]
    admin_email = admin@example.org

    [openpath.example.org]
"""
import logging
import sys
from argparse import ArgumentParser
from pathlib import Path
from typing import Sequence

from openpath._certificates import CertificateBootstrap
from openpath._certificates import ReverseProxySite
from openpath._config import HostTarget
from openpath._config import default_settings_files
from openpath._config import read_inventory
from openpath._core import Fleet
from openpath._core import Handler
from openpath._core import Plan
from openpath._core import Provisioner
from openpath._core import RunReport
from openpath._cron import EnsureCronJob
from openpath._files import DeployFile
from openpath._files import DeployTemplate
from openpath._files import EnsureLine
from openpath._firewall import AllowFirewallRule
from openpath._firewall import EnableFirewall
from openpath._host import Host
from openpath._host import LocalHost
from openpath._host import SshHost
from openpath._logging import init_logging
from openpath._packages import EnsureKeyTrusted
from openpath._packages import EnsurePackage
from openpath._packages import UpdateAptCache
from openpath._services import EnsureServiceEnabled
from openpath._services import EnsureServiceStarted
from openpath._services import ReloadSystemd
from openpath._services import RestartOnChange
from openpath._source import EnsureBootstrapRan
from openpath._source import EnsureCheckout

_reload_systemd = 'Reload systemd'
_restart_app = 'Restart e-mission-server'
_restart_nginx = 'Restart nginx'


def handlers() -> Sequence[Handler]:
    # Order matters: the unit file is reloaded before the service restarts.
    return [
        ReloadSystemd(),
        RestartOnChange('e-mission-server'),
        RestartOnChange('nginx', precheck='nginx -t'),
        ]


def plan(target: HostTarget) -> Plan:
    s = target.settings
    return [
        # MongoDB
        # See: https://www.mongodb.com/docs/manual/tutorial/install-mongodb-on-ubuntu/
        EnsurePackage(['gnupg', 'curl']),
        EnsureKeyTrusted(s['mongodb_key_url'], s['mongodb_keyring']),
        EnsureLine(s['mongodb_source_list'], s['mongodb_repository'], 0o400),
        UpdateAptCache(watched=[s['mongodb_source_list'], s['mongodb_keyring']]),
        EnsurePackage(['mongodb-org']),
        EnsureServiceStarted('mongod'),

        # Application
        EnsurePackage(['git']),
        EnsureCheckout(s['app_repo_uri'], s['app_dir'], s['app_revision']),
        EnsureBootstrapRan(s['conda_marker'], s['conda_setup'], chdir=s['app_dir']),
        DeployFile(
            'start_e-mission-server.sh', '/root/start_e-mission-server.sh', 0o700,
            notify=[_restart_app]),
        DeployTemplate(
            'e-mission-server.service', '/etc/systemd/system/e-mission-server.service',
            target.variables(), 0o400,
            notify=[_reload_systemd, _restart_app]),
        # Handlers do not fire after a failed run.
        EnsureServiceEnabled('e-mission-server'),
        EnsureServiceStarted('e-mission-server'),

        # Hourly analysis
        DeployFile('start_analysis.sh', '/root/start_analysis.sh', 0o700),
        EnsureCronJob('Start hourly analysis', '/root/start_analysis.sh', minute='0'),

        # Firewall
        EnsurePackage(['ufw']),
        AllowFirewallRule('22'),
        EnableFirewall(),

        # nginx and the certificate
        EnsurePackage(['nginx']),
        AllowFirewallRule('Nginx Full'),
        CertificateBootstrap(
            ReverseProxySite('e-mission-server', target.variables()),
            target.inventory_hostname,
            target.admin_email,
            restart_handler=_restart_nginx,
            ),
        ]


def provision(host: Host, target: HostTarget, check: bool = False) -> RunReport:
    provisioner = Provisioner(host, handlers(), check=check)
    return provisioner.run(plan(target))


def main(args: Sequence[str]) -> int:
    parser = ArgumentParser(description="Configure OpenPath servers.")
    parser.add_argument('inventory', type=Path, help="INI file: a section per host.")
    parser.add_argument(
        '--limit', default='*',
        help="Provision only hosts matching the mask, default: %(default)s")
    parser.add_argument(
        '--check', action='store_true',
        help="Only report what would change.")
    parser.add_argument(
        '--forks', type=int, default=1,
        help="Hosts provisioned at once, default: %(default)s")
    parser.add_argument(
        '--local', action='store_true',
        help="Provision this machine instead of connecting via SSH.")
    parsed_args = parser.parse_args(args)
    log_file = init_logging(parsed_args.inventory.stem)
    _logger.info("Log file: %s", log_file)
    targets = {t.inventory_hostname: t for t in read_inventory(parsed_args.inventory, default_settings_files)}
    if parsed_args.local:
        hosts = [LocalHost(name) for name in targets]
    else:
        hosts = [SshHost(name, targets[name].ssh_user()) for name in targets]
    fleet = Fleet(hosts).limit(parsed_args.limit)
    _logger.info("Provision %s", fleet.name())
    results = fleet.run(
        lambda host: provision(host, targets[host.name], check=parsed_args.check),
        forks=parsed_args.forks,
        )
    failed = 0
    for name, result in results.items():
        if isinstance(result, RunReport):
            print(f"{name}: {result.summary()}", flush=True)
        else:
            failed += 1
            print(f"{name}: FAILED: {result}", flush=True)
    return 10 if failed else 0


def console_script():
    exit(main(sys.argv[1:]))


_logger = logging.getLogger(__name__)

if __name__ == '__main__':
    console_script()
