import io
import os
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock, patch

from bucketfs.app import _split_object_path, format_size, main
from bucketfs.errors import ConfigError
from bucketfs.s3 import S3Fs

from fakes import FakeS3Client, endpoint_error


class TestCliDispatch(unittest.TestCase):
    def setUp(self) -> None:
        self.client = FakeS3Client(["demo"])
        self.client.add_object("demo", "a/b.txt", b"0123456789")
        self.opened: list[str] = []

        def open_fs(remote, config_path, stats, backends=None):
            self.opened.append(remote)
            _, path = remote.split(":", 1)
            bucket, _, root = path.partition("/")
            return S3Fs("demo", self.client, bucket, root=root, stats=stats)

        patcher = patch("bucketfs.app._open_fs", side_effect=open_fs)
        self.open_fs = patcher.start()
        self.addCleanup(patcher.stop)
        console = patch("bucketfs.app.Console")
        console.start()
        self.addCleanup(console.stop)

    def test_ls(self) -> None:
        self.assertEqual(main(["ls", "aws:demo"]), 0)
        self.assertEqual(self.opened, ["aws:demo"])

    def test_ls_incomplete_listing_fails(self) -> None:
        self.client.fail_list_pages = {0}
        with self.assertLogs("bucketfs.listing", level="ERROR"):
            self.assertEqual(main(["ls", "aws:demo"]), 1)

    def test_lsd(self) -> None:
        self.assertEqual(main(["lsd", "aws:demo"]), 0)

    def test_mkdir_existing_bucket(self) -> None:
        self.assertEqual(main(["mkdir", "aws:demo"]), 0)
        self.assertEqual(len(self.client.calls_to("create_bucket")), 1)

    def test_rmdir_non_empty_reports_error(self) -> None:
        self.assertEqual(main(["rmdir", "aws:demo"]), 1)
        self.assertIn("demo", self.client.buckets)

    def test_cat(self) -> None:
        out = io.TextIOWrapper(io.BytesIO())
        with patch("sys.stdout", out):
            self.assertEqual(main(["cat", "aws:demo/a/b.txt"]), 0)
        self.assertEqual(out.buffer.getvalue(), b"0123456789")
        self.assertEqual(self.opened, ["aws:demo/a"])

    def test_copyto_uses_file_mtime(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "local.txt"
            source.write_bytes(b"local data")
            os.utime(source, (1704164645.5, 1704164645.5))
            self.assertEqual(main(["copyto", str(source), "aws:demo/up/local.txt"]), 0)
        stored = self.client.buckets["demo"]["up/local.txt"]
        self.assertEqual(stored.data, b"local data")
        self.assertEqual(stored.metadata["mtime"], "1704164645.5")

    def test_copy(self) -> None:
        self.assertEqual(main(["copy", "aws:demo/a/b.txt", "aws:demo/c/d.txt"]), 0)
        self.assertEqual(self.client.buckets["demo"]["c/d.txt"].data, b"0123456789")

    def test_touch(self) -> None:
        self.assertEqual(main(["touch", "aws:demo/a/b.txt"]), 0)
        mtime = self.client.buckets["demo"]["a/b.txt"].metadata["mtime"]
        stamped = datetime.fromtimestamp(float(mtime), tz=timezone.utc)
        self.assertLess(abs((datetime.now(timezone.utc) - stamped).total_seconds()), 60)

    def test_touch_failure_sets_exit_code(self) -> None:
        self.client.fail_copy = True
        with self.assertLogs("bucketfs.s3", level="ERROR"):
            self.assertEqual(main(["touch", "aws:demo/a/b.txt"]), 1)

    def test_delete(self) -> None:
        self.assertEqual(main(["delete", "aws:demo/a/b.txt"]), 0)
        self.assertNotIn("a/b.txt", self.client.buckets["demo"])

    def test_delete_missing_object(self) -> None:
        self.assertEqual(main(["delete", "aws:demo/a/nope"]), 1)

    def test_unreachable_endpoint_reports_error(self) -> None:
        self.client.get_object = Mock(side_effect=endpoint_error())
        self.client.delete_object = Mock(side_effect=endpoint_error())
        self.client.upload_fileobj = Mock(side_effect=endpoint_error())
        self.assertEqual(main(["cat", "aws:demo/a/b.txt"]), 1)
        self.assertEqual(main(["delete", "aws:demo/a/b.txt"]), 1)
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "local.txt"
            source.write_bytes(b"local data")
            self.assertEqual(main(["copyto", str(source), "aws:demo/up/local.txt"]), 1)


class TestCliHelpers(unittest.TestCase):
    def test_split_object_path(self) -> None:
        self.assertEqual(_split_object_path("aws:demo/a/b.txt"), ("aws:demo/a", "b.txt"))
        self.assertEqual(_split_object_path("aws:demo/b.txt"), ("aws:demo", "b.txt"))
        with self.assertRaises(ConfigError):
            _split_object_path("aws:demo")

    def test_format_size(self) -> None:
        self.assertEqual(format_size(-1), "-")
        self.assertEqual(format_size(10), "10 B")
        self.assertEqual(format_size(2048), "2.0 KB")

    def test_unknown_remote(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config = Path(temp_dir) / "bucketfs.conf"
            config.write_text("[aws]\ntype = s3\n")
            with patch("bucketfs.app.Console"):
                code = main(["--config", str(config), "ls", "other:demo"])
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
