# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import fnmatch
import importlib
import logging
import os
import sys
import unittest
from argparse import ArgumentParser
from pathlib import Path
from pathlib import PurePath


def main(args):
    parser = ArgumentParser(description="Run unit tests of the provisioning code.")
    parser.add_argument(
        '--pattern', default='test_*.py',
        help="Test file name mask, default: %(default)s")
    parsed_args = parser.parse_args(args)
    found = _walk(_root / 'openpath', parsed_args.pattern)
    suite = unittest.TestSuite()
    for python_file in sorted(found):
        module_name = _build_module_name(python_file)
        _logger.debug("Import: %s", module_name)
        module = importlib.import_module(module_name)
        scope = unittest.defaultTestLoader.loadTestsFromModule(module)
        if scope.countTestCases() > 0:
            _logger.debug("Will run: %r as %r", module, scope)
            suite.addTests(scope)
        else:
            _logger.debug("Skip empty: %r", module)
    if os.getenv('DRY_RUN'):
        _logger.info("Dry run: would run %d unit tests", suite.countTestCases())
        return 0
    _logger.info("Run %d tests", suite.countTestCases())
    runner = unittest.TextTestRunner(stream=sys.stdout, verbosity=2)
    result = runner.run(suite)
    if result.wasSuccessful():
        return 0
    else:
        return 10


def _walk(top: Path, pattern: str):
    """Discover test files recursively, skip hidden dirs and caches.

    >>> _walk(_root / 'openpath', 'test_core.py')  # doctest: +ELLIPSIS
    [...Path('.../openpath/tests/test_core.py')]
    """
    stack = [top]
    result = []
    while stack:
        f = stack.pop()
        if f.name.startswith('.') or f.name == '__pycache__':
            _logger.debug("Skip: %s", f)
        elif f.is_dir():
            stack.extend(f.iterdir())
        elif fnmatch.fnmatch(f.name, pattern):
            _logger.debug("Collect: %s", f)
            result.append(f)
    return result


def _build_module_name(path: PurePath):
    """Build module name from path.

    >>> _build_module_name(_root / 'openpath/tests/test_core.py')
    'openpath.tests.test_core'
    """
    path = path.relative_to(_root)
    path = path.with_suffix('')
    return '.'.join(path.parts)


_logger = logging.getLogger(__name__)
_root = Path(__file__).parent.parent
assert str(_root) in sys.path

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(levelname)7s %(message)s')
    exit(main(sys.argv[1:]))
