"""Tests for the bounded-parallelism package installer."""

import threading
import time

import pytest

from workstation_setup.installer import PackageInstaller, dedupe_specs
from workstation_setup.models import OutcomeStatus, PackageKind, PackageSpec, RetryPolicy

from .fakes import FakeBackend

NO_DELAY = RetryPolicy(max_attempts=3, base_delay=0, backoff=2)


def specs(*names, kind=PackageKind.BREW, category="core"):
    return [PackageSpec(identifier=n, kind=kind, category=category) for n in names]


def statuses(ledger):
    return {o.identifier: o.status for o in ledger}


def test_scenario_a_all_installed_fresh():
    backend = FakeBackend()
    ledger = PackageInstaller(backend).install_all(specs("git", "node", "docker"), max_jobs=3, retry=NO_DELAY)

    assert len(ledger) == 3
    assert ledger.counts()[OutcomeStatus.INSTALLED] == 3
    assert sorted(backend.install_calls) == ["docker", "git", "node"]


def test_scenario_b_already_installed_skips_install():
    backend = FakeBackend(installed={"git"})
    ledger = PackageInstaller(backend).install_all(specs("git"), max_jobs=3, retry=NO_DELAY)

    assert statuses(ledger) == {"git": OutcomeStatus.ALREADY_INSTALLED}
    assert backend.install_calls == []
    assert ledger.get("git").attempts == 0


def test_scenario_c_flaky_package_is_retried():
    backend = FakeBackend(fail_times={"flaky": 1})
    ledger = PackageInstaller(backend).install_all(specs("flaky"), max_jobs=1, retry=NO_DELAY)

    outcome = ledger.get("flaky")
    assert outcome.status is OutcomeStatus.INSTALLED
    assert outcome.attempts == 2
    assert backend.calls_for("flaky") == 2


def test_scenario_d_bounded_parallelism_wall_clock():
    delay = 0.2
    backend = FakeBackend(delay=delay)

    started = time.monotonic()
    ledger = PackageInstaller(backend).install_all(specs("a", "b", "c", "d", "e"), max_jobs=2, retry=NO_DELAY)
    elapsed = time.monotonic() - started

    assert len(ledger) == 5
    # ceil(5 / 2) rounds of `delay`: not serial (5x), not unbounded (1x).
    assert 2.75 * delay <= elapsed < 4.75 * delay
    assert backend.high_water == 2


def test_second_run_is_all_already_installed():
    backend = FakeBackend()
    installer = PackageInstaller(backend)
    first = installer.install_all(specs("git", "node", "jq"), max_jobs=2, retry=NO_DELAY)
    calls_after_first = len(backend.install_calls)

    second = installer.install_all(specs("git", "node", "jq"), max_jobs=2, retry=NO_DELAY)

    assert first.counts()[OutcomeStatus.INSTALLED] == 3
    assert second.counts()[OutcomeStatus.ALREADY_INSTALLED] == 3
    assert len(backend.install_calls) == calls_after_first


@pytest.mark.parametrize("max_jobs", [1, 2, 8])
def test_duplicates_installed_once(max_jobs):
    backend = FakeBackend(delay=0.01)
    duplicated = specs("a", "a", "b") + specs("a", "b", category="frontend")

    ledger = PackageInstaller(backend).install_all(duplicated, max_jobs=max_jobs, retry=NO_DELAY)

    assert backend.calls_for("a") == 1
    assert backend.calls_for("b") == 1
    assert sorted(ledger.identifiers()) == ["a", "b"]


def test_dedupe_specs_keeps_first_occurrence():
    unique = dedupe_specs(specs("node", category="core") + specs("node", "bun", category="frontend"))
    assert [(s.identifier, s.category) for s in unique] == [("node", "core"), ("bun", "frontend")]


@pytest.mark.parametrize("max_jobs", [1, 2, 3, 5])
def test_in_flight_installs_never_exceed_max_jobs(max_jobs):
    backend = FakeBackend(delay=0.03)
    names = [f"pkg{i}" for i in range(10)]

    ledger = PackageInstaller(backend).install_all(specs(*names), max_jobs=max_jobs, retry=NO_DELAY)

    assert len(ledger) == 10
    assert 1 <= backend.high_water <= max_jobs


def test_more_jobs_than_packages():
    backend = FakeBackend(delay=0.01)
    ledger = PackageInstaller(backend).install_all(specs("a", "b"), max_jobs=16, retry=NO_DELAY)
    assert len(ledger) == 2
    assert backend.high_water <= 2


def test_retry_exhaustion_records_failed():
    backend = FakeBackend(always_fail={"broken"})
    retry = RetryPolicy(max_attempts=4, base_delay=0, backoff=2)

    ledger = PackageInstaller(backend).install_all(specs("broken", "fine"), max_jobs=2, retry=retry)

    broken = ledger.get("broken")
    assert broken.status is OutcomeStatus.FAILED
    assert broken.attempts == 4
    assert "simulated failure" in broken.error
    assert backend.calls_for("broken") == 4
    assert ledger.get("fine").status is OutcomeStatus.INSTALLED


def test_fails_until_last_attempt_then_succeeds():
    backend = FakeBackend(fail_times={"slow": 2})
    retry = RetryPolicy(max_attempts=3, base_delay=0, backoff=2)

    ledger = PackageInstaller(backend).install_all(specs("slow"), max_jobs=1, retry=retry)

    assert ledger.get("slow").status is OutcomeStatus.INSTALLED
    assert backend.calls_for("slow") == 3


def test_backoff_delays_between_attempts():
    waits = []
    backend = FakeBackend(always_fail={"x"})
    retry = RetryPolicy(max_attempts=4, base_delay=0.5, backoff=2)

    PackageInstaller(backend, sleep=waits.append).install_all(specs("x"), max_jobs=1, retry=retry)

    # No wait after the final attempt.
    assert waits == [0.5, 1.0, 2.0]


def test_dry_run_never_touches_backend():
    backend = FakeBackend()
    ledger = PackageInstaller(backend).install_all(specs("a", "b", "a"), max_jobs=2, retry=NO_DELAY, dry_run=True)

    assert len(ledger) == 2
    assert ledger.counts()[OutcomeStatus.DRY_RUN] == 2
    assert backend.check_calls == []
    assert backend.install_calls == []


def test_empty_spec_list():
    ledger = PackageInstaller(FakeBackend()).install_all([], max_jobs=3, retry=NO_DELAY)
    assert len(ledger) == 0


def test_max_jobs_must_be_positive():
    with pytest.raises(ValueError):
        PackageInstaller(FakeBackend()).install_all(specs("a"), max_jobs=0, retry=NO_DELAY)


def test_ledger_complete_when_mixed_outcomes():
    backend = FakeBackend(installed={"a"}, always_fail={"b"}, fail_times={"c": 1}, delay=0.01)
    names = ["a", "b", "c", "d", "a", "d"]

    ledger = PackageInstaller(backend).install_all(specs(*names), max_jobs=3, retry=NO_DELAY)

    assert len(ledger) == len(set(names))
    assert statuses(ledger) == {
        "a": OutcomeStatus.ALREADY_INSTALLED,
        "b": OutcomeStatus.FAILED,
        "c": OutcomeStatus.INSTALLED,
        "d": OutcomeStatus.INSTALLED,
    }
    assert sum(ledger.counts().values()) == 4


def test_outcomes_carry_duration():
    backend = FakeBackend(delay=0.05)
    ledger = PackageInstaller(backend).install_all(specs("a"), max_jobs=1, retry=NO_DELAY)
    assert ledger.get("a").duration >= 0.04


def test_installed_check_error_is_treated_as_not_installed():
    class CheckExplodes(FakeBackend):
        def is_installed(self, identifier):
            raise OSError("brew not responding")

    backend = CheckExplodes()
    ledger = PackageInstaller(backend).install_all(specs("a"), max_jobs=1, retry=NO_DELAY)

    assert ledger.get("a").status is OutcomeStatus.INSTALLED
    assert backend.install_calls == ["a"]


def test_unexpected_backend_exception_is_a_failed_attempt():
    class Buggy(FakeBackend):
        def install(self, identifier):
            super().install(identifier)
            raise KeyError(identifier)

    backend = Buggy()
    retry = RetryPolicy(max_attempts=2, base_delay=0, backoff=1)
    ledger = PackageInstaller(backend).install_all(specs("a"), max_jobs=1, retry=retry)

    outcome = ledger.get("a")
    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.attempts == 2
    assert outcome.error.startswith("KeyError")


def test_progress_callback_sees_every_outcome_once():
    seen = []
    lock = threading.Lock()

    def progress(done, total, outcome):
        with lock:
            seen.append((done, total, outcome.identifier))

    backend = FakeBackend(delay=0.01)
    PackageInstaller(backend, progress=progress).install_all(specs("a", "b", "c", "b"), max_jobs=2, retry=NO_DELAY)

    assert [d for d, _, _ in seen] == [1, 2, 3]
    assert {t for _, t, _ in seen} == {3}
    assert sorted(i for _, _, i in seen) == ["a", "b", "c"]


def test_failing_progress_callback_does_not_stop_the_run():
    def progress(done, total, outcome):
        raise BrokenPipeError("stdout closed")

    backend = FakeBackend()
    ledger = PackageInstaller(backend, progress=progress).install_all(specs("a", "b", "c"), max_jobs=1, retry=NO_DELAY)

    assert statuses(ledger) == {name: OutcomeStatus.INSTALLED for name in ("a", "b", "c")}
    assert backend.install_calls == ["a", "b", "c"]


def test_cancel_before_start_dispatches_nothing():
    backend = FakeBackend()
    cancel = threading.Event()
    cancel.set()

    ledger = PackageInstaller(backend, cancel=cancel).install_all(specs("a", "b"), max_jobs=2, retry=NO_DELAY)

    assert len(ledger) == 0
    assert backend.install_calls == []


def test_cancel_during_backoff_stops_retrying_and_dispatching():
    backend = FakeBackend(always_fail={"a"})
    installer = PackageInstaller(backend)
    installer._sleep = lambda seconds: installer.cancel.set()
    retry = RetryPolicy(max_attempts=5, base_delay=30, backoff=2)

    ledger = installer.install_all(specs("a", "b", "c"), max_jobs=1, retry=retry)

    assert ledger.identifiers() == ["a"]
    outcome = ledger.get("a")
    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.error == "cancelled"
    assert outcome.attempts == 1
    assert backend.install_calls == ["a"]


def test_cancel_wakes_backoff_wait_early():
    backend = FakeBackend(always_fail={"a"})
    cancel = threading.Event()
    installer = PackageInstaller(backend, cancel=cancel)
    retry = RetryPolicy(max_attempts=3, base_delay=30, backoff=2)

    timer = threading.Timer(0.1, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        ledger = installer.install_all(specs("a"), max_jobs=1, retry=retry)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 5
    assert ledger.get("a").error == "cancelled"
