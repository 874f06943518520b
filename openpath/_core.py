# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import fnmatch
import logging
import os
from abc import ABCMeta
from abc import abstractmethod
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable
from typing import Collection
from typing import Iterable
from typing import Iterator
from typing import Mapping
from typing import Optional
from typing import Sequence
from typing import Union

from openpath._errors import HostUnreachable
from openpath._errors import ProvisioningError
from openpath._facts import HostFacts
from openpath._host import Host


class Outcome(Enum):
    CHANGED = 'changed'
    UNCHANGED = 'ok'
    WOULD_CHANGE = 'would change'


class Step(metaclass=ABCMeta):
    """Idempotent action: check the host, act only if the check fails."""

    def __init__(self, notify: Collection[str] = ()):
        self.notify = tuple(notify)

    @abstractmethod
    def is_satisfied(self, facts: HostFacts) -> bool:
        pass

    @abstractmethod
    def apply(self, host: Host) -> Outcome:
        pass


class StepSource(metaclass=ABCMeta):
    """Steps that depend on what earlier steps did to the host.

    The driver pulls steps one by one and applies each before pulling
    the next, so a source may look at the host between its steps.
    """

    @abstractmethod
    def expand(self, facts: HostFacts) -> Iterator[Step]:
        pass


Plan = Sequence[Union[Step, StepSource]]


class Handler(metaclass=ABCMeta):
    """Action deferred to the end of a run and fired at most once."""

    def __init__(self, name: str):
        self.name = name

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.name!r}>'

    @abstractmethod
    def fire(self, host: Host):
        pass


class PendingHandlers:
    """Flags set by changed steps, checked once at the end of a run.

    >>> class _Say(Handler):
    ...     def fire(self, host):
    ...         pass
    >>> pending = PendingHandlers([_Say('Reload'), _Say('Restart')])
    >>> pending.notify(['Restart', 'Reload', 'Restart'])
    >>> [h.name for h in pending.due()]
    ['Reload', 'Restart']
    >>> pending.notify(['Rewind'])
    Traceback (most recent call last):
    ...
    ValueError: Unknown handler 'Rewind'; known: ['Reload', 'Restart']
    """

    def __init__(self, handlers: Sequence[Handler]):
        self._handlers = list(handlers)
        self._known = {h.name for h in self._handlers}
        self._pending = set()

    def notify(self, names: Iterable[str]):
        for name in names:
            if name not in self._known:
                raise ValueError(f"Unknown handler {name!r}; known: {sorted(self._known)!r}")
            self._pending.add(name)

    def due(self) -> Sequence[Handler]:
        """Pending handlers, in the order they were declared."""
        return [h for h in self._handlers if h.name in self._pending]


class RunReport:

    def __init__(self, host_name: str):
        self.host_name = host_name
        self.results: list[tuple[str, Outcome]] = []
        self.fired: list[str] = []

    def __repr__(self):
        return f'<{RunReport.__name__} {self.host_name}: {self.summary()}>'

    def add(self, step: Step, outcome: Outcome):
        self.results.append((repr(step), outcome))

    def changed(self) -> Sequence[str]:
        return [step for step, outcome in self.results if outcome is not Outcome.UNCHANGED]

    def summary(self) -> str:
        return f"ok={len(self.results) - len(self.changed())} changed={len(self.changed())} handlers={len(self.fired)}"


class StepFailed(Exception):

    def __init__(self, host_name: str, step: str, error: Exception):
        super().__init__(f"{host_name}: {step}: {error}")
        self.host_name = host_name
        self.step = step
        self.error = error


class Provisioner:
    """Bring one host to the state described by a plan.

    Steps run strictly in order. The first failure stops the run:
    later steps are not attempted and pending handlers do not fire.
    Re-running the whole plan is the way to retry.
    """

    def __init__(self, host: Host, handlers: Sequence[Handler], check: bool = False):
        self._host = host
        self._handlers = handlers
        self._check = check

    def run(self, plan: Plan) -> RunReport:
        facts = HostFacts(self._host)
        pending = PendingHandlers(self._handlers)
        report = RunReport(self._host.name)
        for step in self._steps(plan, facts):
            outcome = self._run_step(step, facts)
            report.add(step, outcome)
            if outcome is Outcome.CHANGED:
                pending.notify(step.notify)
        for handler in pending.due():
            _logger.info("%s: Handler %s", self._host.name, handler.name)
            try:
                handler.fire(self._host)
            except HostUnreachable:
                raise
            except Exception as e:
                self._log_failure(handler, e)
                raise StepFailed(self._host.name, repr(handler), e) from e
            report.fired.append(handler.name)
        _logger.info("%s: %s", self._host.name, report.summary())
        return report

    def _steps(self, plan: Plan, facts: HostFacts) -> Iterator[Step]:
        for item in plan:
            if isinstance(item, StepSource):
                yield from self._expand(item, facts)
            else:
                yield item

    def _expand(self, source: StepSource, facts: HostFacts) -> Iterator[Step]:
        steps = source.expand(facts)
        while True:
            try:
                step = next(steps)
            except StopIteration:
                return
            except HostUnreachable:
                raise
            except Exception as e:
                self._log_failure(source, e)
                raise StepFailed(self._host.name, repr(source), e) from e
            yield step

    def _run_step(self, step: Step, facts: HostFacts) -> Outcome:
        try:
            if step.is_satisfied(facts):
                outcome = Outcome.UNCHANGED
            elif self._check:
                outcome = Outcome.WOULD_CHANGE
            else:
                outcome = step.apply(self._host)
        except HostUnreachable:
            raise
        except Exception as e:
            self._log_failure(step, e)
            raise StepFailed(self._host.name, repr(step), e) from e
        _logger.info("%s: %r: %s", self._host.name, step, outcome.value)
        return outcome

    def _log_failure(self, what, error: Exception):
        if isinstance(error, ProvisioningError):
            _logger.error("%s: %r: failed", self._host.name, what)
        else:
            # A bug or an unexpected answer from the host; keep the traceback.
            _logger.exception("%s: %r: unexpected error", self._host.name, what)


class Fleet:
    """Hosts provisioned with the same plan, each independently of others."""

    def __init__(self, hosts: Sequence[Host]):
        self._hosts = hosts

    def limit(self, pattern: str) -> 'Fleet':
        return Fleet([h for h in self._hosts if fnmatch.fnmatch(h.name, pattern)])

    def name(self):
        return ', '.join(h.name for h in self._hosts)

    def run(
            self,
            provision: Callable[[Host], RunReport],
            forks: int = 1,
            ) -> Mapping[str, Union[RunReport, Exception]]:
        """Provision every host; a failed host does not stop the others."""
        questionnaire = Questionnaire("Provision")
        chosen = [h for h in self._hosts if questionnaire.user_agrees_with(h.name)]
        with ThreadPoolExecutor(max_workers=max(1, forks)) as executor:
            futures = {h.name: executor.submit(_run_guarded, provision, h) for h in chosen}
        return {name: future.result() for name, future in futures.items()}


def _run_guarded(provision: Callable[[Host], RunReport], host: Host) -> Union[RunReport, Exception]:
    try:
        return provision(host)
    except (StepFailed, HostUnreachable) as e:
        _logger.error("%s: Provisioning failed: %s", host.name, e)
        return e


class Questionnaire:
    """Ask the operator before touching each host.

    Only asks if OPENPATH_ASK_FOR_CONFIRMATION is set. Answers:
    y - yes, n - no, a - yes to this and all the rest, d - no to all the rest.
    """

    def __init__(self, prompt: str, ask: Optional[Callable[[str], str]] = None):
        self._prompt = prompt
        self._ask = ask or input
        self._sticky_answer: Optional[bool] = None

    def user_agrees_with(self, question: str) -> bool:
        if not os.getenv('OPENPATH_ASK_FOR_CONFIRMATION', ''):
            return True
        prompt = f"{self._prompt} {question} [y,n,a,d]? "
        if self._sticky_answer is not None:
            print(prompt + ('a' if self._sticky_answer else 'd'), flush=True)
            return self._sticky_answer
        while True:
            answer = self._ask(prompt)[:1].lower()
            if answer == 'y':
                return True
            if answer == 'n':
                return False
            if answer in ('a', 'd'):
                self._sticky_answer = answer == 'a'
                return self._sticky_answer


_logger = logging.getLogger(__name__)
