from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import RemoteConfig
from .errors import ConfigError
from .interfaces import Fs
from .s3 import REGION_V2_SIGNATURE, REGION_V4_SIGNATURE, new_fs
from .stats import Stats

FsFactory = Callable[[str, str, RemoteConfig, Optional[Stats]], Fs]


@dataclass(frozen=True)
class OptionExample:
    value: str
    help: str


@dataclass(frozen=True)
class Option:
    name: str
    help: str
    examples: tuple[OptionExample, ...] = ()


@dataclass(frozen=True)
class BackendInfo:
    name: str
    factory: FsFactory
    options: tuple[Option, ...] = field(default_factory=tuple)


class BackendTable:
    """Backends by type name, built by whoever composes the adapter."""

    def __init__(self, backends: Optional[list[BackendInfo]] = None) -> None:
        self._backends: dict[str, BackendInfo] = {}
        for info in backends or []:
            self.register(info)

    def register(self, info: BackendInfo) -> None:
        self._backends[info.name] = info

    def get(self, name: str) -> BackendInfo:
        try:
            return self._backends[name]
        except KeyError:
            raise ConfigError(f"Unknown backend type {name!r}") from None

    def names(self) -> list[str]:
        return sorted(self._backends)

    def new_fs(
        self,
        remote_name: str,
        path: str,
        config: RemoteConfig,
        stats: Optional[Stats] = None,
    ) -> Fs:
        return self.get(config.type).factory(remote_name, path, config, stats)


def _s3_factory(
    name: str, path: str, config: RemoteConfig, stats: Optional[Stats]
) -> Fs:
    return new_fs(name, path, config, stats=stats)


_REGION_EXAMPLES = (
    ("us-east-1", "The default endpoint - a good choice if you are unsure.\n"
     "US Region, Northern Virginia or Pacific Northwest.\n"
     "Leave location constraint empty."),
    ("us-west-2", "US West (Oregon) Region\nNeeds location constraint us-west-2."),
    ("us-west-1", "US West (Northern California) Region\n"
     "Needs location constraint us-west-1."),
    ("eu-west-1", "EU (Ireland) Region\nNeeds location constraint EU or eu-west-1."),
    ("eu-central-1", "EU (Frankfurt) Region\nNeeds location constraint eu-central-1."),
    ("ap-southeast-1", "Asia Pacific (Singapore) Region\n"
     "Needs location constraint ap-southeast-1."),
    ("ap-southeast-2", "Asia Pacific (Sydney) Region\n"
     "Needs location constraint ap-southeast-2."),
    ("ap-northeast-1", "Asia Pacific (Tokyo) Region\n"
     "Needs location constraint ap-northeast-1."),
    ("sa-east-1", "South America (Sao Paulo) Region\n"
     "Needs location constraint sa-east-1."),
    (REGION_V2_SIGNATURE, "For S3 clones that only understand v2 signatures, "
     "eg Ceph. Set the endpoint too."),
    (REGION_V4_SIGNATURE, "For S3 clones that understand v4 signatures. "
     "Set the endpoint too."),
)

_LOCATION_EXAMPLES = (
    ("", "Empty for US Region, Northern Virginia or Pacific Northwest."),
    ("us-west-2", "US West (Oregon) Region."),
    ("us-west-1", "US West (Northern California) Region."),
    ("eu-west-1", "EU (Ireland) Region."),
    ("EU", "EU Region."),
    ("ap-southeast-1", "Asia Pacific (Singapore) Region."),
    ("ap-southeast-2", "Asia Pacific (Sydney) Region."),
    ("ap-northeast-1", "Asia Pacific (Tokyo) Region."),
    ("sa-east-1", "South America (Sao Paulo) Region."),
)

S3_OPTIONS = (
    Option("access_key_id", "AWS Access Key ID - leave blank for anonymous access."),
    Option(
        "secret_access_key",
        "AWS Secret Access Key (password) - leave blank for anonymous access.",
    ),
    Option(
        "region",
        "Region to connect to.",
        tuple(OptionExample(value, text) for value, text in _REGION_EXAMPLES),
    ),
    Option(
        "endpoint",
        "Endpoint for S3 API.\nLeave blank if using AWS to use the default "
        "endpoint for the region.\nSpecify if using an S3 clone such as Ceph.",
    ),
    Option(
        "location_constraint",
        "Location constraint - must be set to match the Region. "
        "Used when creating buckets only.",
        tuple(OptionExample(value, text) for value, text in _LOCATION_EXAMPLES),
    ),
    Option("acl", "Canned ACL used when creating buckets and storing objects."),
    Option("checkers", "Number of listing results buffered ahead of the reader."),
)


def default_backends() -> BackendTable:
    return BackendTable([BackendInfo("s3", _s3_factory, S3_OPTIONS)])
