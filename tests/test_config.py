import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from bucketfs.backends import BackendInfo, BackendTable, default_backends
from bucketfs.config import (
    RemoteConfig,
    default_config_path,
    load_remotes,
    parse_remote,
)
from bucketfs.errors import ConfigError
from bucketfs.s3 import S3Fs


class TestRemoteConfig(unittest.TestCase):
    def test_load_remotes(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "bucketfs.conf"
            path.write_text(
                "[aws]\n"
                "type = s3\n"
                "access_key_id = AKIA\n"
                "secret_access_key = secret\n"
                "region = eu-west-1\n"
                "location_constraint = EU\n"
                "checkers = 16\n"
                "\n"
                "[public]\n"
                "endpoint = https://ceph.example.com\n"
                "region = other-v2-signature\n"
            )
            remotes = load_remotes(path)

        self.assertEqual(
            remotes["aws"],
            RemoteConfig(
                access_key_id="AKIA",
                secret_access_key="secret",
                region="eu-west-1",
                location_constraint="EU",
                checkers=16,
            ),
        )
        self.assertEqual(remotes["public"].access_key_id, "")
        self.assertEqual(remotes["public"].endpoint, "https://ceph.example.com")
        self.assertEqual(remotes["public"].checkers, 8)

    def test_missing_file_is_empty(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            self.assertEqual(load_remotes(Path(temp_dir) / "missing.conf"), {})

    def test_bad_checkers(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "bucketfs.conf"
            path.write_text("[aws]\ncheckers = lots\n")
            with self.assertRaises(ConfigError):
                load_remotes(path)

    def test_default_config_path(self) -> None:
        with patch.dict(os.environ, {"BUCKETFS_CONFIG": "/tmp/custom.conf"}):
            self.assertEqual(default_config_path(), Path("/tmp/custom.conf"))
        env = {k: v for k, v in os.environ.items() if k != "BUCKETFS_CONFIG"}
        env["XDG_CONFIG_HOME"] = "/tmp/xdg"
        with patch.dict(os.environ, env, clear=True):
            self.assertEqual(
                default_config_path(), Path("/tmp/xdg/bucketfs/bucketfs.conf")
            )

    def test_parse_remote(self) -> None:
        self.assertEqual(parse_remote("aws:demo/a/b"), ("aws", "demo/a/b"))
        self.assertEqual(parse_remote("aws:"), ("aws", ""))
        with self.assertRaises(ConfigError):
            parse_remote("demo/a/b")
        with self.assertRaises(ConfigError):
            parse_remote(":demo")


class TestBackendTable(unittest.TestCase):
    def test_default_table_has_s3(self) -> None:
        table = default_backends()
        self.assertEqual(table.names(), ["s3"])
        options = [option.name for option in table.get("s3").options]
        self.assertIn("location_constraint", options)
        regions = [example.value for example in table.get("s3").options[2].examples]
        self.assertIn("other-v2-signature", regions)

    def test_tables_are_independent(self) -> None:
        first = default_backends()
        second = default_backends()
        first.register(BackendInfo("memory", lambda *args: None))
        self.assertEqual(second.names(), ["s3"])

    def test_unknown_backend(self) -> None:
        with self.assertRaises(ConfigError):
            BackendTable().get("s3")

    def test_new_fs_dispatches_on_type(self) -> None:
        calls = []

        def factory(name, path, config, stats):
            calls.append((name, path, config.type))
            return "fs"

        table = BackendTable([BackendInfo("memory", factory)])
        result = table.new_fs("mem", "bucket/dir", RemoteConfig(type="memory"))
        self.assertEqual(result, "fs")
        self.assertEqual(calls, [("mem", "bucket/dir", "memory")])

    def test_s3_factory_builds_backend(self) -> None:
        with patch("bucketfs.s3.build_client") as build:
            fs = default_backends().new_fs("aws", "demo", RemoteConfig())
        build.assert_called_once()
        self.assertIsInstance(fs, S3Fs)
        self.assertEqual(fs.bucket, "demo")


if __name__ == "__main__":
    unittest.main()
