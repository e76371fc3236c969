"""End-to-end tests for session ordering, completion, restart and flushing."""

import logging
import os
from datetime import datetime

import pytest

from conftest import (
    DT, FailingDestination, FixedClock, ScriptedShuffler, read_lines, tick_until
)
from experiment.constants import LANDMARK_WRIST, LOG_HEADER
from experiment.errors import ConfigurationError, PersistenceError
from experiment.session_controller import SessionController, SessionState
from experiment.targets import RandomShuffler
from experiment.trial_sequencer import TrialPhase
from tracking.grasp_signal import GraspState
from tracking.grip_zone import GripEvaluator, GripZone
from tracking.metrics_store import CsvLogDestination, MetricsStore

HEADER_LINE = ",".join(LOG_HEADER)
EXPERIMENT_ID = "2025-01-01_12-00-00"


def phase(controller):
    return controller.session.sequencer.phase


def wait_for_sampling(controller):
    return tick_until(controller, lambda: phase(controller) == TrialPhase.SAMPLING)


def grab_and_release(controller, grasp, hand='right'):
    """Run the current trial to completion with an immediate grasp and release."""
    wait_for_sampling(controller)
    grasp.set_state(hand, GraspState.SELECTING)
    controller.tick(DT)
    grasp.set_state(hand, GraspState.IDLE)
    controller.tick(DT)
    while controller.state == SessionState.RUNNING and phase(controller) == TrialPhase.SETTLE:
        controller.tick(DT)


def run_measured_trial(controller, pose, grasp):
    """
    Trial with a scripted reach toward B at (0.5, 0, 0).

    The wrist starts 0.8 m from B, the hand opens past the threshold 0.5 m
    from B on the 10th sampling tick, peaks at 80% and grasps on the 40th.
    """
    wait_for_sampling(controller)
    for n in range(1, 40):
        if n == 10:
            pose.set_landmark(LANDMARK_WRIST, (0.0, 0.0, 0.0))
            pose.set_openness(40.0)
        elif n == 20:
            pose.set_openness(80.0)
        controller.tick(DT)
    grasp.set_state('right', GraspState.SELECTING)
    controller.tick(DT)
    grasp.set_state('right', GraspState.IDLE)
    controller.tick(DT)
    tick_until(controller, lambda: controller.state != SessionState.RUNNING
               or phase(controller) != TrialPhase.SETTLE)


def run_full_session(controller, grasp):
    for _ in controller.trial_order:
        grab_and_release(controller, grasp)


def test_full_session_writes_one_row_per_target(make_controller, pose, grasp, log_path, reloads):
    pose.set_landmark(LANDMARK_WRIST, (-0.3, 0.0, 0.0))
    controller = make_controller()
    controller.start()
    assert [t.id for t in controller.trial_order] == ['B', 'A', 'C']

    run_measured_trial(controller, pose, grasp)
    assert controller.session.current_index == 1
    assert phase(controller) == TrialPhase.COUNTDOWN

    grab_and_release(controller, grasp)
    grab_and_release(controller, grasp)

    assert controller.state == SessionState.COMPLETED
    assert controller.flushed
    assert controller.session.experiment_id == EXPERIMENT_ID

    lines = read_lines(log_path)
    assert lines[0] == HEADER_LINE
    assert lines[1] == f"{EXPERIMENT_ID},B,2.50,80.0,0.80,0.50"
    assert [line.split(',')[1] for line in lines[1:]] == ['B', 'A', 'C']
    assert len(lines) == 4
    assert reloads == []


def test_completion_hides_objects_and_shows_results(make_controller, grasp, presentation):
    controller = make_controller()
    controller.start()
    assert presentation.objects == {
        'A': True, 'B': True, 'C': True, 'Table': True, 'Plane': True
    }

    run_full_session(controller, grasp)

    assert all(active is False for active in presentation.objects.values())
    assert presentation.backgrounds[-1] == pytest.approx(0.7)
    summary = presentation.texts[-1]
    assert summary.startswith("B:\nTotal Time(s):")
    assert "A:" in summary and "C:" in summary


def test_ticks_after_completion_do_nothing(make_controller, grasp, log_path):
    controller = make_controller()
    controller.start()
    run_full_session(controller, grasp)

    for _ in range(100):
        assert controller.tick(DT) == {}
    assert len(read_lines(log_path)) == 4


def test_abort_then_restart_pads_missing_trials(make_controller, grasp, log_path, reloads, caplog):
    controller = make_controller()
    controller.start()
    grab_and_release(controller, grasp)

    grasp.unbind('right')
    with caplog.at_level(logging.ERROR):
        tick_until(controller, lambda: controller.state != SessionState.RUNNING)
    assert controller.state == SessionState.ABORTED
    assert not controller.flushed

    controller.restart()

    lines = read_lines(log_path)
    assert len(lines) == 4
    rows = [line.split(',') for line in lines[1:]]
    assert [row[1] for row in rows] == ['B', 'A', 'C']
    assert {row[0] for row in rows} == {EXPERIMENT_ID}
    assert rows[1][2:] == ['0.00', '0.0', '0.00', '0.00']
    assert rows[2][2:] == ['0.00', '0.0', '0.00', '0.00']
    assert reloads == [True]
    assert controller.state == SessionState.ENDED


def test_restart_mid_trial_pads_and_flushes(make_controller, grasp, log_path, reloads):
    controller = make_controller()
    controller.start()
    grab_and_release(controller, grasp)
    wait_for_sampling(controller)
    for _ in range(5):
        controller.tick(DT)

    controller.restart()

    rows = [line.split(',') for line in read_lines(log_path)[1:]]
    assert [row[1] for row in rows] == ['B', 'A', 'C']
    assert rows[1][2] == '0.00'
    assert reloads == [True]


def test_restart_after_completion_does_not_write_again(make_controller, grasp, log_path, reloads):
    controller = make_controller()
    controller.start()
    run_full_session(controller, grasp)
    before = read_lines(log_path)

    controller.restart()

    assert read_lines(log_path) == before
    assert reloads == [True]


def test_double_restart_writes_once(make_controller, log_path, reloads):
    controller = make_controller()
    controller.start()
    for _ in range(10):
        controller.tick(DT)

    controller.restart()
    controller.restart()

    lines = read_lines(log_path)
    assert len(lines) == 4
    assert reloads == [True, True]


def test_restart_objects_are_shown_again(make_controller, grasp, presentation):
    controller = make_controller()
    controller.start()
    run_full_session(controller, grasp)
    controller.restart()
    assert all(presentation.objects.values())


def test_request_restart_is_deferred_to_next_tick(make_controller, log_path, reloads):
    controller = make_controller()
    controller.start()
    controller.request_restart()
    assert reloads == []

    events = controller.tick(DT)

    assert events == {'restarted': True}
    assert reloads == [True]
    assert len(read_lines(log_path)) == 4


def test_new_session_after_restart_gets_new_id(config, pose, grasp, presentation, log_path, reloads):
    clock = FixedClock(datetime(2025, 1, 1, 12, 0, 0), datetime(2025, 1, 1, 12, 5, 0))
    store = MetricsStore(CsvLogDestination(log_path), clock=clock)
    controller = SessionController(
        config, pose, grasp, presentation,
        metrics_store=store,
        shuffler=ScriptedShuffler(['C', 'B', 'A']),
        on_reload=lambda: reloads.append(True),
    )
    controller.start()
    controller.restart()
    controller.start()
    assert len(controller.session.records) == 0
    assert controller.state == SessionState.RUNNING
    run_full_session(controller, grasp)

    lines = read_lines(log_path)
    assert lines.count(HEADER_LINE) == 1
    ids = [line.split(',')[0] for line in lines[1:]]
    assert ids == ["2025-01-01_12-00-00"] * 3 + ["2025-01-01_12-05-00"] * 3


def test_shutdown_persists_unfinished_session(make_controller, log_path, reloads):
    controller = make_controller()
    controller.start()
    controller.tick(DT)

    controller.shutdown()
    controller.shutdown()

    assert len(read_lines(log_path)) == 4
    assert reloads == []
    assert controller.state == SessionState.ENDED


def test_appends_to_existing_log(make_controller, grasp, log_path):
    os.makedirs(os.path.dirname(log_path), exist_ok=True)
    with open(log_path, 'w', encoding='utf-8', newline='') as f:
        f.write(HEADER_LINE + "\n")
        f.write("2024-12-31_09-00-00,Bottle,1.20,64.5,0.41,0.22\n")

    controller = make_controller()
    controller.start()
    run_full_session(controller, grasp)

    lines = read_lines(log_path)
    assert lines[:2] == [HEADER_LINE, "2024-12-31_09-00-00,Bottle,1.20,64.5,0.41,0.22"]
    assert len(lines) == 5
    assert lines.count(HEADER_LINE) == 1


def test_failed_flush_can_be_retried(make_controller, grasp, log_path, reloads):
    destination = FailingDestination()
    store = MetricsStore(destination, clock=FixedClock())
    controller = make_controller(metrics_store=store)
    controller.start()

    with pytest.raises(PersistenceError):
        run_full_session(controller, grasp)
    assert controller.state == SessionState.COMPLETED
    assert not controller.flushed

    with pytest.raises(PersistenceError):
        controller.restart()
    assert destination.attempts == 2
    assert reloads == []
    assert controller.state == SessionState.UNSAVED

    store.destination = CsvLogDestination(log_path)
    controller.restart()

    assert controller.flushed
    assert controller.state == SessionState.ENDED
    assert len(read_lines(log_path)) == 4
    assert reloads == [True]


def test_failed_restart_mid_session_reports_unsaved(make_controller, log_path, reloads):
    store = MetricsStore(FailingDestination(), clock=FixedClock())
    controller = make_controller(metrics_store=store)
    controller.start()
    wait_for_sampling(controller)

    with pytest.raises(PersistenceError):
        controller.restart()

    assert controller.state == SessionState.UNSAVED
    assert phase(controller) == TrialPhase.CANCELLED
    assert not controller.flushed
    assert reloads == []
    for _ in range(20):
        assert controller.tick(DT) == {}

    store.destination = CsvLogDestination(log_path)
    controller.request_restart()
    assert controller.tick(DT) == {'restarted': True}
    assert controller.state == SessionState.ENDED
    assert [line.split(',')[1] for line in read_lines(log_path)[1:]] == ['B', 'A', 'C']
    assert reloads == [True]


def test_start_saves_unflushed_session_first(make_controller, grasp, log_path, caplog):
    controller = make_controller()
    controller.start()
    grab_and_release(controller, grasp)
    assert len(controller.session.records) == 1

    with caplog.at_level(logging.WARNING):
        controller.start()

    rows = [line.split(',') for line in read_lines(log_path)[1:]]
    assert [row[1] for row in rows] == ['B', 'A', 'C']
    assert rows[0][3] == '10.0'
    assert rows[1][2:] == ['0.00', '0.0', '0.00', '0.00']
    assert "before the previous one was saved" in caplog.text

    assert controller.state == SessionState.RUNNING
    assert len(controller.session.records) == 0
    assert not controller.flushed


def test_start_after_aborted_session_saves_it(make_controller, grasp, log_path):
    controller = make_controller()
    controller.start()
    grasp.unbind('right')
    tick_until(controller, lambda: controller.state != SessionState.RUNNING)
    assert controller.state == SessionState.ABORTED

    grasp.set_state('right', GraspState.IDLE)
    controller.start()

    assert len(read_lines(log_path)) == 4
    assert controller.state == SessionState.RUNNING


def test_start_after_completed_session_does_not_write_again(make_controller, grasp, log_path):
    controller = make_controller()
    controller.start()
    run_full_session(controller, grasp)

    controller.start()

    assert len(read_lines(log_path)) == 4


def test_start_keeps_session_when_previous_cannot_be_saved(make_controller):
    store = MetricsStore(FailingDestination(), clock=FixedClock())
    controller = make_controller(metrics_store=store)
    controller.start()
    previous = controller.session

    with pytest.raises(PersistenceError):
        controller.start()

    assert controller.session is previous
    assert controller.state == SessionState.UNSAVED
    assert len(store) == 3


def test_trial_order_is_permutation_without_helpers(make_controller):
    controller = make_controller(shuffler=RandomShuffler(seed=7))
    controller.start()
    ids = [t.id for t in controller.trial_order]
    assert sorted(ids) == ['A', 'B', 'C']
    assert 'Table' not in ids


def test_shuffler_must_return_permutation(make_controller):
    controller = make_controller(order=('A', 'A', 'C'))
    with pytest.raises(ConfigurationError):
        controller.start()


def test_missing_grasp_signal_is_configuration_error(config, pose, presentation):
    with pytest.raises(ConfigurationError):
        SessionController(config, pose, None, presentation)


def test_invalid_config_rejected_at_construction(config, pose, grasp, presentation):
    config.openness_threshold = 150.0
    with pytest.raises(ConfigurationError):
        SessionController(config, pose, grasp, presentation)


def test_landmark_check_warns_when_missing(make_controller, pose, caplog):
    pose.set_hand_visible(False)
    controller = make_controller()
    with caplog.at_level(logging.WARNING):
        controller.start()
    assert "found 0/3 landmarks" in caplog.text


def test_grip_evaluated_when_current_target_is_grasped(make_controller, grasp):
    touched = GripZone('B')
    touched.on_enter('index_tip', 'FingerTip')
    untouched = GripZone('A')
    controller = make_controller(grip_evaluators={
        'B': GripEvaluator([touched]),
        'A': GripEvaluator([untouched]),
    })
    controller.start()

    grab_and_release(controller, grasp)
    assert controller.grip_results['B'].passed
    assert 'A' not in controller.grip_results

    grab_and_release(controller, grasp)
    assert not controller.grip_results['A'].passed
    assert 'C' not in controller.grip_results


def test_grasp_during_countdown_is_not_evaluated(make_controller, grasp):
    evaluator = GripEvaluator([GripZone('B')])
    controller = make_controller(grip_evaluators={'B': evaluator})
    controller.start()

    grasp.set_state('right', GraspState.SELECTING)
    controller.tick(DT)
    grasp.set_state('right', GraspState.IDLE)
    controller.tick(DT)

    assert phase(controller) == TrialPhase.COUNTDOWN
    assert controller.grip_results == {}
    assert evaluator.last_result is None
