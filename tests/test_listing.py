import threading
import unittest

from bucketfs.errors import ListingError
from bucketfs.listing import ListingStream
from bucketfs.stats import Stats


class TestListingStream(unittest.TestCase):
    def test_items_arrive_in_order(self) -> None:
        def producer(cursor) -> None:
            for index in range(20):
                cursor.emit(index)
            cursor.marker = "end"

        stream = ListingStream(producer, buffer_size=3)
        self.assertEqual(list(stream), list(range(20)))
        self.assertTrue(stream.status.complete)
        self.assertFalse(stream.status.truncated)
        self.assertEqual(stream.status.marker, "end")

    def test_single_pass(self) -> None:
        stream = ListingStream(lambda cursor: cursor.emit("only"))
        self.assertEqual(list(stream), ["only"])
        self.assertEqual(list(stream), [])

    def test_producer_error_ends_stream_and_is_counted(self) -> None:
        stats = Stats()

        def producer(cursor) -> None:
            cursor.emit("first")
            cursor.marker = "first"
            raise ListingError("page two failed")

        with self.assertLogs("bucketfs.listing", level="ERROR"):
            stream = ListingStream(producer, stats=stats, description="test")
            items = list(stream)
        self.assertEqual(items, ["first"])
        self.assertIsInstance(stream.status.error, ListingError)
        self.assertEqual(stream.status.marker, "first")
        self.assertTrue(stream.status.truncated)
        self.assertEqual(stats.errors, 1)

    def test_failed_stream_is_empty(self) -> None:
        stats = Stats()
        with self.assertLogs("bucketfs.listing", level="ERROR"):
            stream = ListingStream.failed(ListingError("no bucket"), stats=stats)
            self.assertEqual(list(stream), [])
        self.assertTrue(stream.status.truncated)
        self.assertEqual(stats.errors, 1)

    def test_cancel_unblocks_producer(self) -> None:
        emitted = []
        blocked = threading.Event()

        def producer(cursor) -> None:
            for index in range(1000):
                if index == 2:
                    blocked.set()
                if not cursor.emit(index):
                    return
                emitted.append(index)

        stream = ListingStream(producer, buffer_size=2)
        self.assertTrue(blocked.wait(timeout=5))
        self.assertEqual(next(stream), 0)
        stream.cancel()
        status = stream.wait(timeout=5)
        self.assertTrue(status.cancelled)
        self.assertFalse(status.complete)
        self.assertLess(len(emitted), 1000)

    def test_context_exit_cancels(self) -> None:
        def producer(cursor) -> None:
            index = 0
            while cursor.emit(index):
                index += 1

        with ListingStream(producer, buffer_size=1) as stream:
            self.assertEqual(next(stream), 0)
        status = stream.wait(timeout=5)
        self.assertTrue(status.cancelled)
        with self.assertRaises(StopIteration):
            next(stream)


if __name__ == "__main__":
    unittest.main()
