import threading
import unittest
from datetime import datetime, timezone

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from tickertape.errors import ScheduleError
from tickertape.scheduling.scheduler import JobScheduler, JobSpec, parse_schedule


class TestParseSchedule(unittest.TestCase):
    def test_cron(self):
        self.assertIsInstance(parse_schedule("*/5 * * * *"), CronTrigger)
        self.assertIsInstance(parse_schedule("@hourly", "Asia/Tokyo"), CronTrigger)

    def test_every(self):
        trigger = parse_schedule("@every 10m")
        self.assertIsInstance(trigger, IntervalTrigger)
        self.assertEqual(trigger.interval.total_seconds(), 600)
        self.assertEqual(parse_schedule("@every 1h").interval.total_seconds(), 3600)

    def test_sub_minute_interval_rejected(self):
        with self.assertRaises(ScheduleError):
            parse_schedule("@every 30s")
        self.assertEqual(parse_schedule("@every 60s").interval.total_seconds(), 60)

    def test_bad_expressions(self):
        for bad in ["", "every 5 minutes", "* * * *", "61 * * * *", "@every 5d"]:
            with self.assertRaises(ScheduleError, msg=bad):
                parse_schedule(bad)


class TestJobScheduler(unittest.TestCase):
    def setUp(self):
        self.scheduler = JobScheduler(timezone="UTC")

    def tearDown(self):
        self.scheduler.shutdown()

    def test_register_and_duplicate_names(self):
        self.scheduler.register(JobSpec("digest", "0 * * * *", lambda: None))
        self.assertEqual(self.scheduler.job_names, ["digest"])
        with self.assertRaises(ScheduleError):
            self.scheduler.register(JobSpec("digest", "@every 5m", lambda: None))

    def test_invalid_schedule_is_not_registered(self):
        with self.assertRaises(ScheduleError):
            self.scheduler.register(JobSpec("bad", "@every 10s", lambda: None))
        self.assertEqual(self.scheduler.job_names, [])

    def test_failing_job_does_not_propagate(self):
        calls = []

        def boom():
            calls.append(1)
            raise RuntimeError("scrape failed")

        self.scheduler.register(JobSpec("boom", "@every 5m", boom))
        with self.assertLogs("tickertape.scheduling.scheduler", level="ERROR"):
            self.scheduler.run_now("boom")
        self.assertEqual(calls, [1])

    def test_run_now_unknown(self):
        with self.assertRaises(ScheduleError):
            self.scheduler.run_now("nope")

    def test_overlap_policy(self):
        self.scheduler.register(JobSpec("serial", "@every 5m", lambda: None, allow_overlap=False))
        self.scheduler.register(JobSpec("parallel", "@every 5m", lambda: None))
        self.assertEqual(self.scheduler._scheduler.get_job("serial").max_instances, 1)
        self.assertGreater(self.scheduler._scheduler.get_job("parallel").max_instances, 1)

    def _fire(self, name):
        self.scheduler._scheduler.modify_job(name, next_run_time=datetime.now(timezone.utc))

    def test_failed_job_fires_again_while_slow_job_runs(self):
        slow_started = threading.Event()
        release = threading.Event()
        boom_fired = threading.Event()
        boom_calls = []

        def slow():
            slow_started.set()
            release.wait(10)

        def boom():
            boom_calls.append(1)
            boom_fired.set()
            raise RuntimeError("listing page returned 503")

        self.scheduler.register(JobSpec("slow", "@every 5m", slow))
        self.scheduler.register(JobSpec("boom", "@every 5m", boom))
        self.scheduler.start()
        try:
            self._fire("slow")
            self.assertTrue(slow_started.wait(5))

            for expected in (1, 2):
                boom_fired.clear()
                self._fire("boom")
                self.assertTrue(boom_fired.wait(5))
                self.assertEqual(len(boom_calls), expected)

            self.assertFalse(release.is_set())
            self.assertTrue(self.scheduler.running)
            self.assertIsNotNone(self.scheduler.next_run_time("boom"))
        finally:
            release.set()

    def test_start_and_shutdown(self):
        self.scheduler.register(JobSpec("tick", "@every 5m", lambda: None))
        self.scheduler.start()
        self.assertTrue(self.scheduler.running)
        self.assertIsNotNone(self.scheduler.next_run_time("tick"))
        self.scheduler.shutdown()
        self.assertFalse(self.scheduler.running)


if __name__ == "__main__":
    unittest.main()
