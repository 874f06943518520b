# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Configuration of OpenPath servers, kept in code under version control.

It serves as documentation for what is installed and configured on the
servers. Nothing should be changed on them by hand.

A server is configured by a plan: a sequence of steps run in order.
A step first looks at the host and acts only if the host is not already
in the desired state. Hence, steps are idempotent: the second run
must not "accumulate" changes and running a plan many times is safe.
If a step fails, the run stops there. Fix the problem and run the whole
plan again.

Steps may ask for a deferred action, a handler, e.g. a service restart.
Handlers fire at the end of a successful run, once each, however many
steps asked for them.

Commands are written in their raw form, so that it is clear what is run
on the host and it is easy to copy them from the log and run by hand.

Configuration must be as non-invasive as possible.
Alter the defaults as little as possible.
"""
from openpath._certificates import CertificateBootstrap
from openpath._certificates import CertificateState
from openpath._certificates import ReverseProxySite
from openpath._certificates import SiteVariant
from openpath._config import HostTarget
from openpath._config import read_inventory
from openpath._core import Fleet
from openpath._core import Handler
from openpath._core import Outcome
from openpath._core import Provisioner
from openpath._core import RunReport
from openpath._core import Step
from openpath._core import StepFailed
from openpath._core import StepSource
from openpath._errors import ChecksumOrCommandError
from openpath._errors import HostUnreachable
from openpath._errors import NetworkFetchError
from openpath._errors import PackageManagerError
from openpath._errors import ProvisioningError
from openpath._errors import ValidationError
from openpath._facts import HostFacts
from openpath._host import Host
from openpath._host import LocalHost
from openpath._host import SshHost

__all__ = [
    'CertificateBootstrap',
    'CertificateState',
    'ChecksumOrCommandError',
    'Fleet',
    'Handler',
    'Host',
    'HostFacts',
    'HostTarget',
    'HostUnreachable',
    'LocalHost',
    'NetworkFetchError',
    'Outcome',
    'PackageManagerError',
    'Provisioner',
    'ProvisioningError',
    'ReverseProxySite',
    'RunReport',
    'SiteVariant',
    'SshHost',
    'Step',
    'StepFailed',
    'StepSource',
    'ValidationError',
    'read_inventory',
    ]
