import threading
import time
import unittest

from storage.schema import ProgressSnapshot

from qcmtrainer.app.timers import AutoSaver, Countdown, PeriodicTask

from tests.common import four_single, started


class PeriodicTaskTests(unittest.TestCase):
    def test_fires_repeatedly_until_cancelled(self) -> None:
        calls = []
        done = threading.Event()

        def cb() -> None:
            calls.append(1)
            if len(calls) >= 3:
                done.set()

        task = PeriodicTask(0.01, cb)
        task.start()
        self.assertTrue(done.wait(2.0))
        task.cancel()
        self.assertFalse(task.running)
        count = len(calls)
        time.sleep(0.05)
        self.assertLessEqual(len(calls), count + 1)

    def test_failing_callback_keeps_running(self) -> None:
        calls = []
        done = threading.Event()

        def cb() -> None:
            calls.append(1)
            if len(calls) >= 2:
                done.set()
            raise RuntimeError("boom")

        task = PeriodicTask(0.01, cb, name="flaky")
        with self.assertLogs("qcmtrainer.app.timers", level="ERROR"):
            task.start()
            self.assertTrue(done.wait(2.0))
        task.cancel()

    def test_interval_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            PeriodicTask(0, lambda: None)


class CountdownTests(unittest.TestCase):
    def test_expiry_finalizes_once(self) -> None:
        session = started(four_single(), flow="exam", total_time=3)
        session.answer("A")
        finished = threading.Event()
        results = []
        session.events.subscribe("finished", lambda r: finished.set())
        countdown = Countdown(session, tick_s=0.01, on_expire=results.append)
        countdown.start()
        self.assertTrue(finished.wait(2.0))
        time.sleep(0.05)
        countdown.stop()
        self.assertTrue(session.finished)
        self.assertEqual(session.time_left, 0)
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].score_all_or_nothing, 5.0)

    def test_pause_holds_the_clock(self) -> None:
        session = started(four_single(), flow="exam", total_time=2)
        finished = threading.Event()
        session.events.subscribe("finished", lambda r: finished.set())
        countdown = Countdown(session, tick_s=0.01)
        countdown.pause()
        countdown.start()
        time.sleep(0.1)
        self.assertEqual(session.time_left, 2)
        self.assertFalse(session.finished)
        countdown.resume()
        self.assertTrue(finished.wait(2.0))
        countdown.stop()

    def test_untimed_session_does_not_start(self) -> None:
        session = started(four_single())
        countdown = Countdown(session, tick_s=0.01)
        countdown.start()
        self.assertFalse(countdown.running)


class AutoSaverTests(unittest.TestCase):
    def test_save_now(self) -> None:
        session = started(four_single())
        session.answer("A")
        saved = []
        saver = AutoSaver(session, saved.append, interval_s=60)
        self.assertTrue(saver.save_now())
        self.assertIsInstance(saved[0], ProgressSnapshot)
        self.assertEqual(saved[0].selected_answers, {0: ["A"]})
        session.finalize()
        self.assertFalse(saver.save_now())
        self.assertEqual(len(saved), 1)

    def test_periodic_save_reads_live_state(self) -> None:
        session = started(four_single())
        saved = []
        got_two = threading.Event()

        def sink(snap) -> None:
            saved.append(snap)
            if len(saved) >= 2:
                got_two.set()

        saver = AutoSaver(session, sink, interval_s=0.01)
        saver.start()
        session.goto(2)
        self.assertTrue(got_two.wait(2.0))
        saver.stop()
        self.assertEqual(saved[-1].current_question, 2)
        self.assertEqual(session.current, 2)


if __name__ == "__main__":
    unittest.main()
