import pytest

from typemywordz.core.transcription_backends import ServiceSelector, ServiceStats


def _with_stats(**counts):
    selector = ServiceSelector()
    for name, (successes, failures) in counts.items():
        selector.stats[name] = ServiceStats(successes=successes, failures=failures)
    return selector


def test_fresh_selector_rotates_through_all_providers():
    selector = ServiceSelector()

    picks = [selector.select() for _ in range(4)]

    assert picks == ['local', 'api', 'queued', 'local']
    assert selector.rotation_cursor == 4


def test_low_success_provider_is_skipped():
    selector = _with_stats(local=(2, 0), api=(0, 3), queued=(1, 0))

    assert selector.eligible_providers() == ['local', 'queued']
    assert selector.select() == 'local'
    assert selector.select() == 'queued'
    assert selector.select() == 'local'


@pytest.mark.parametrize("successes,failures,eligible", [
    (3, 7, False),   # exactly 30% is not enough
    (1, 2, True),    # 33%
    (0, 1, False),
    (0, 0, True),    # no history counts as perfect
])
def test_eligibility_threshold(successes, failures, eligible):
    selector = _with_stats(api=(successes, failures))

    assert selector.is_eligible('api') is eligible


def test_never_selects_provider_at_or_below_threshold():
    selector = _with_stats(local=(5, 5), api=(1, 9), queued=(3, 7))

    picks = {selector.select() for _ in range(20)}

    assert picks == {'local'}


def test_defaults_to_local_when_nothing_is_eligible():
    selector = _with_stats(local=(0, 4), api=(1, 9), queued=(0, 2))

    assert selector.select() == 'local'
    assert selector.rotation_cursor == 1


def test_cursor_advances_once_per_selection_even_when_eligible_set_changes():
    selector = ServiceSelector()
    selector.select()
    selector.record_failure('api')
    selector.select()

    assert selector.rotation_cursor == 2


def test_fallback_order_keeps_fixed_priority_and_includes_ineligible():
    selector = _with_stats(api=(0, 10))

    assert selector.fallback_order('local') == ['api', 'queued']
    assert selector.fallback_order('api') == ['local', 'queued']
    assert selector.fallback_order('queued') == ['local', 'api']


def test_record_success_tracks_running_average():
    selector = ServiceSelector()
    selector.record_success('local', 100)
    selector.record_success('local', 300)
    selector.record_failure('local')

    stats = selector.stats['local']
    assert stats.successes == 2
    assert stats.failures == 1
    assert stats.avg_response_time_ms == pytest.approx(200)
    assert selector.snapshot()['local']['success_rate'] == pytest.approx(0.667)
