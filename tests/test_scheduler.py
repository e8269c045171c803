import threading

from reminder_worker.scheduler import TaskOutcome
from reminder_worker.tasks import OVERDUE, STATUS_DONE, Task
from tests.fakes import FakeChannel, FakeStore, make_task


def test_scenario_a_fires_each_offset_once_across_gap(build_scheduler, channel, clock):
    store = FakeStore([make_task(1, minutes=50)])
    scheduler = build_scheduler(store)

    report = scheduler.run_tick()
    assert report.count(TaskOutcome.fired) == 1
    assert store.history[1] == {60}

    # ticks missed: jump straight to 14 minutes remaining
    clock.advance(36)
    report = scheduler.run_tick()
    assert report.count(TaskOutcome.fired) == 1
    assert store.history[1] == {60, 15}
    assert [phase for _, phase in store.marks] == [60, 15]

    # nothing left until the deadline passes
    clock.advance(1)
    assert scheduler.run_tick().count(TaskOutcome.not_due) == 1
    assert len(channel.batches) == 2


def test_scenario_b_overdue_burst_in_batches(build_scheduler, channel, sleeps):
    store = FakeStore([make_task(1, minutes=-10)])
    scheduler = build_scheduler(store)

    report = scheduler.run_tick()

    assert report.count(TaskOutcome.fired) == 1
    assert store.history[1] == {OVERDUE}
    # 1 text + 10 stickers in batches of 5 -> 3 calls, pacing twice
    assert [len(batch) for _, batch in channel.batches] == [5, 5, 1]
    assert channel.batches[0][1][0]["type"] == "text"
    assert sleeps == [1.0, 1.0]

    # never again while open
    scheduler.run_tick()
    assert len(channel.batches) == 3


def test_scenario_c_concurrent_paths_record_once(build_scheduler, clock):
    task = make_task(1, minutes=-10)
    store = FakeStore([task])
    tick_path = build_scheduler(store)
    webhook_path = build_scheduler(store, channel=FakeChannel())

    barrier = threading.Barrier(2)
    results = []

    def run(scheduler):
        barrier.wait()
        results.append(scheduler.evaluate_task(task, clock()))

    threads = [threading.Thread(target=run, args=(s,)) for s in (tick_path, webhook_path)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == sorted([TaskOutcome.fired, TaskOutcome.already_fired])
    assert store.history[1] == {OVERDUE}


def test_scenario_d_store_read_failure_skips_tick(build_scheduler, channel):
    store = FakeStore([make_task(1, minutes=-10)], fail_read=True)
    scheduler = build_scheduler(store)

    report = scheduler.run_tick()
    assert report.store_error
    assert channel.batches == []
    assert store.marks == []

    store.fail_read = False
    report = scheduler.run_tick()
    assert report.count(TaskOutcome.fired) == 1
    assert store.history[1] == {OVERDUE}


def test_dispatch_failure_leaves_history_for_retry(build_scheduler):
    failing = FakeChannel(fail_on={0})
    store = FakeStore([make_task(1, minutes=30)])
    scheduler = build_scheduler(store, channel=failing)

    assert scheduler.run_tick().count(TaskOutcome.dispatch_failed) == 1
    assert store.marks == []

    # channel recovers, same phase retried
    assert scheduler.run_tick().count(TaskOutcome.fired) == 1
    assert store.history[1] == {60}


def test_write_failure_resends_next_tick(build_scheduler, channel):
    store = FakeStore([make_task(1, minutes=30)], fail_write=True)
    scheduler = build_scheduler(store)

    assert scheduler.run_tick().count(TaskOutcome.mark_failed) == 1
    store.fail_write = False
    assert scheduler.run_tick().count(TaskOutcome.fired) == 1
    assert len(channel.batches) == 2


def test_one_bad_task_does_not_abort_tick(build_scheduler, channel):
    class ExplodingStore(FakeStore):
        def mark_phase_fired(self, task_id, phase):
            if task_id == 1:
                raise RuntimeError("boom")
            return super().mark_phase_fired(task_id, phase)

    store = ExplodingStore([make_task(1, minutes=-5), make_task(2, minutes=-5, owner="U2")])
    report = build_scheduler(store).run_tick()

    assert report.count(TaskOutcome.error) == 1
    assert report.count(TaskOutcome.fired) == 1
    assert store.history[2] == {OVERDUE}


def test_skips_no_deadline_disabled_and_closed(build_scheduler, channel):
    store = FakeStore([
        Task(id=1, owner="U1", label="someday"),
        make_task(2, minutes=-5, notifications_enabled=False),
        make_task(3, minutes=-5, status=STATUS_DONE),
    ])
    report = build_scheduler(store).run_tick()

    assert report.outcomes == {
        TaskOutcome.no_deadline: 1,
        TaskOutcome.disabled: 1,
        TaskOutcome.closed: 1,
    }
    assert channel.batches == []


def test_one_notification_per_task_per_tick(build_scheduler, channel):
    store = FakeStore([make_task(1, minutes=5)])
    scheduler = build_scheduler(store)

    scheduler.run_tick()
    assert store.history[1] == {60}
    scheduler.run_tick()
    assert store.history[1] == {60, 15}
    assert len(channel.batches) == 2
    # both catch-up reminders report the real time left, not their offset
    texts = [batch[1]["text"] for _, batch in channel.batches]
    assert all("5 minutes" in text for text in texts)
    assert not any("hour" in text for text in texts)


def test_ticks_do_not_overlap(build_scheduler):
    entered = threading.Event()
    release = threading.Event()

    class SlowStore(FakeStore):
        def list_open_tasks(self):
            entered.set()
            release.wait(5)
            return super().list_open_tasks()

    store = SlowStore([])
    scheduler = build_scheduler(store)
    worker = threading.Thread(target=scheduler.run_tick)
    worker.start()
    entered.wait(5)

    assert scheduler.run_tick().skipped

    release.set()
    worker.join()
    assert store.reads == 1
