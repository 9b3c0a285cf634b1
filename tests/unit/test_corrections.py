"""Unit tests for the correction pipeline."""

import logging
import threading

from dnsplane.corrections import ConcurrencyMode, CorrectionGroup, CorrectionPipeline
from dnsplane.errors import ProviderError, ZoneFetchError
from dnsplane.models import Correction, DomainConfig


def _recording_plan(log, fail=None, error=ProviderError):
    """Build a plan with three corrections and one report per zone."""

    def plan(dc):
        def step():
            corrections = [Correction(f"{dc.name}: note")]
            for n in (1, 2, 3):
                msg = f"{dc.name}: #{n}"

                def action(msg=msg):
                    if msg == fail:
                        raise error(f"rejected {msg}")
                    log.append((msg, threading.current_thread().name))

                corrections.append(Correction(msg, action))
            return CorrectionGroup(dc.unique_name, "fake", "dns", corrections, 3)

        return [step]

    return plan


def _domains(*names):
    return [DomainConfig(name=name) for name in names]


class TestPipeline:
    """Tests for CorrectionPipeline."""

    def test_preview_does_not_execute(self):
        """Preview gathers corrections without running them."""
        log = []
        (outcome,) = CorrectionPipeline(push=False).run(_domains("a.com"), _recording_plan(log))
        assert log == []
        assert outcome.pending == 3
        assert {outcome.status(c) for c in outcome.groups[0].corrections} == {"report", "skipped"}

    def test_push_executes_in_order(self):
        """Push runs corrections of a zone in order."""
        log = []
        (outcome,) = CorrectionPipeline(push=True).run(_domains("a.com"), _recording_plan(log))
        assert [msg for msg, _ in log] == ["a.com: #1", "a.com: #2", "a.com: #3"]
        assert not outcome.has_errors
        assert [outcome.status(c) for c in outcome.groups[0].corrections] == ["report", "done", "done", "done"]

    def test_failure_stops_zone_not_run(self):
        """A failed correction skips the rest of its zone; other zones still run."""
        log = []
        pipeline = CorrectionPipeline(push=True, mode=ConcurrencyMode.NONE)
        first, second = pipeline.run(_domains("a.com", "b.com"), _recording_plan(log, fail="a.com: #2"))
        statuses = [first.status(c) for c in first.groups[0].corrections]
        assert statuses == ["report", "done", "failed", "skipped"]
        assert isinstance(first.errors[0], ProviderError)
        assert not second.has_errors
        assert [msg for msg, _ in log] == ["a.com: #1", "b.com: #1", "b.com: #2", "b.com: #3"]

    def test_step_error_stops_zone(self):
        """An error while gathering stops the remaining steps of the zone."""
        calls = []

        def plan(dc):
            def broken():
                raise ZoneFetchError("cannot read zone")

            def later():
                calls.append(dc.name)
                return CorrectionGroup(dc.unique_name, "reg", "registrar")

            return [broken, later]

        (outcome,) = CorrectionPipeline(push=True).run(_domains("a.com"), plan)
        assert calls == []
        assert outcome.has_errors
        assert outcome.groups == []

    def test_cancelled_before_start(self):
        """A set cancel event stops before any zone work."""
        cancel = threading.Event()
        cancel.set()
        log = []
        (outcome,) = CorrectionPipeline(push=True, cancel=cancel).run(_domains("a.com"), _recording_plan(log))
        assert outcome.cancelled
        assert outcome.has_errors
        assert log == []

    def test_no_concurrency_runs_on_caller_thread(self):
        """Mode none processes every zone serially."""
        log = []
        pipeline = CorrectionPipeline(push=True, mode="none")
        pipeline.run(_domains("a.com", "b.com"), _recording_plan(log), can_concur=lambda dc: True)
        assert {thread for _, thread in log} == {threading.current_thread().name}

    def test_concurrent_mode_uses_capability(self):
        """Only zones whose providers can run concurrently use the pool."""
        log = []
        pipeline = CorrectionPipeline(push=True, mode=ConcurrencyMode.CONCURRENT, max_workers=2)
        pipeline.run(_domains("a.com", "b.com"), _recording_plan(log), can_concur=lambda dc: dc.name == "a.com")
        threads = {msg.split(":")[0]: thread for msg, thread in log}
        assert threads["b.com"] == threading.current_thread().name
        assert threads["a.com"] != threading.current_thread().name

    def test_outcomes_keep_configuration_order(self):
        """Outcomes come back in the order the zones were given."""
        names = ["c.com", "a.com", "b.com", "d.com"]
        outcomes = CorrectionPipeline(push=False, mode=ConcurrencyMode.ALL, max_workers=4).run(
            _domains(*names), _recording_plan([])
        )
        assert [o.domain for o in outcomes] == names

    def test_notify_logs_preview(self, caplog):
        """Notifications go to the dnsplane.notify logger."""
        with caplog.at_level(logging.INFO, logger="dnsplane.notify"):
            CorrectionPipeline(push=False, notify=True).run(_domains("a.com"), _recording_plan([]))
        notes = [r.getMessage() for r in caplog.records if r.name == "dnsplane.notify"]
        assert notes == [f"[preview] a.com (fake): a.com: #{n}" for n in (1, 2, 3)]

    def test_unexpected_action_error_stays_in_zone(self):
        """An adapter raising a non-dnsplane error only fails its own zone."""
        log = []
        pipeline = CorrectionPipeline(push=True, mode=ConcurrencyMode.NONE)
        first, second = pipeline.run(
            _domains("a.com", "b.com"), _recording_plan(log, fail="a.com: #1", error=OSError)
        )
        assert isinstance(first.failed[id(first.groups[0].corrections[1])], OSError)
        assert first.has_errors
        assert not second.has_errors
        assert [msg for msg, _ in log] == ["b.com: #1", "b.com: #2", "b.com: #3"]

    def test_unexpected_error_in_pool_stays_in_zone(self):
        """Zones running in the pool are isolated the same way."""
        log = []
        pipeline = CorrectionPipeline(push=True, mode=ConcurrencyMode.ALL, max_workers=2)
        first, second = pipeline.run(
            _domains("a.com", "b.com"), _recording_plan(log, fail="a.com: #2", error=UnicodeError)
        )
        assert isinstance(first.errors[0], UnicodeError)
        assert not second.has_errors
        assert sorted(msg for msg, _ in log if msg.startswith("b.com")) == ["b.com: #1", "b.com: #2", "b.com: #3"]

    def test_unexpected_step_error_stays_in_zone(self):
        """A crash while reading a zone is recorded and the next zone runs."""

        def plan(dc):
            def step():
                if dc.name == "a.com":
                    raise OSError("connection reset")
                return CorrectionGroup(dc.unique_name, "fake", "dns")

            return [step]

        first, second = CorrectionPipeline(push=True, mode=ConcurrencyMode.NONE).run(_domains("a.com", "b.com"), plan)
        assert str(first.errors[0]) == "connection reset"
        assert [g.source for g in second.groups] == ["fake"]
