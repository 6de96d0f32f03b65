import dataclasses

import pytest

from simrt.options import Options, SchedulerPolicy, get_options


@pytest.fixture
def restore_options():
    saved = dataclasses.replace(get_options())
    yield get_options()
    for field in dataclasses.fields(Options):
        setattr(get_options(), field.name, getattr(saved, field.name))


def test_get_options_returns_same_instance(restore_options):
    first = get_options()
    second = get_options()
    first.end_time = 7.25
    assert second.end_time == 7.25


def test_changes_to_global_options_persist(restore_options):
    restore_options.debug = True
    restore_options.start_time = 2.5
    assert get_options().debug is True
    assert get_options().start_time == 2.5


def test_default_flags_are_disabled():
    options = Options()
    assert options.debug is False
    assert options.profiling is False


def test_default_policy_is_not_forced():
    assert Options().scheduler_policy is None


def test_policy_from_name():
    assert SchedulerPolicy("sequential") is SchedulerPolicy.SEQUENTIAL
    assert SchedulerPolicy("multithreaded") is SchedulerPolicy.MULTITHREADED


def test_unknown_policy_name_is_rejected():
    with pytest.raises(ValueError):
        SchedulerPolicy("parallel")


def test_independent_instances_do_not_share_state():
    first = Options()
    second = Options()
    first.end_time = 42.0
    assert second.end_time != first.end_time