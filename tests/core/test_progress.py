import unittest
from unittest.mock import MagicMock

from depscope.core.progress import FINALISING_RESULTS, PROGRESS_STEPS, ProgressReporter


class TestProgressReporter(unittest.TestCase):

    def test_six_named_steps(self):
        self.assertEqual(len(PROGRESS_STEPS), 6)
        self.assertEqual(PROGRESS_STEPS[0], "PARSING_MANIFESTS")
        self.assertEqual(PROGRESS_STEPS[-1], "FINALISING_RESULTS")

    def test_callbacks_are_notified_and_removable(self):
        reporter = ProgressReporter()
        first, second = MagicMock(), MagicMock()
        reporter.add_callback(first)
        reporter.add_callback(second)

        reporter.update(FINALISING_RESULTS, 50)
        reporter.remove_callback(first)
        reporter.sink(FINALISING_RESULTS)(100)

        first.assert_called_once_with(FINALISING_RESULTS, 50)
        self.assertEqual(second.call_count, 2)

        reporter.clear_callbacks()
        reporter.update(FINALISING_RESULTS, 100)
        self.assertEqual(second.call_count, 2)

    def test_failing_callback_does_not_propagate(self):
        reporter = ProgressReporter()
        healthy = MagicMock()
        reporter.add_callback(MagicMock(side_effect=RuntimeError("ui gone")))
        reporter.add_callback(healthy)

        reporter.update(FINALISING_RESULTS, 10)

        healthy.assert_called_once_with(FINALISING_RESULTS, 10)
