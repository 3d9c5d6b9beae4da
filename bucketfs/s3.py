from __future__ import annotations

import logging
import mimetypes
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import BinaryIO, Optional, Union

import boto3
import botocore
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import RemoteConfig
from .errors import (
    AuthError,
    BackendConnectionError,
    CantCopy,
    ErrorKind,
    ListingError,
    NotFound,
    ParseError,
    ProbeFailure,
    ProviderError,
    classify_error,
    translate_error,
)
from .interfaces import Copier, Dir, Fs, Object
from .limited import LimitedFs
from .listing import DEFAULT_BUFFER_SIZE, ListingCursor, ListingStream
from .stats import Stats
from .version import USER_AGENT

logger = logging.getLogger(__name__)

META_MTIME = "mtime"  # sent as X-Amz-Meta-Mtime
LIST_CHUNK_SIZE = 1024
MAX_RETRIES = 10
UPLOAD_CONCURRENCY = 2

DEFAULT_ENDPOINT = "https://s3.amazonaws.com/"
DEFAULT_REGION = "us-east-1"
REGION_V2_SIGNATURE = "other-v2-signature"
REGION_V4_SIGNATURE = "other-v4-signature"
SIGNATURE_VERSIONS = {
    REGION_V2_SIGNATURE: "s3",
    REGION_V4_SIGNATURE: "s3v4",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_PATH_MATCHER = re.compile(r"^([^/]*)(.*)$", re.DOTALL)
_MD5_MATCHER = re.compile(r"^[0-9a-f]{32}$")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_path(path: str) -> tuple[str, str]:
    """Split ``bucket/some/dir`` into the bucket and a slash-trimmed prefix."""
    if not isinstance(path, str):
        raise ParseError(f"Couldn't parse bucket out of s3 path {path!r}")
    match = _PATH_MATCHER.match(path)
    if match is None:
        raise ParseError(f"Couldn't parse bucket out of s3 path {path!r}")
    bucket, directory = match.group(1), match.group(2).strip("/")
    if not bucket and directory:
        raise ParseError(f"Couldn't parse bucket out of s3 path {path!r}")
    return bucket, directory


def time_to_float_string(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    micros = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    sign = "-" if micros < 0 else ""
    secs, frac = divmod(abs(micros), 1_000_000)
    if not frac:
        return f"{sign}{secs}"
    return f"{sign}{secs}." + f"{frac:06d}".rstrip("0")


def float_string_to_time(text: str) -> datetime:
    text = text.strip()
    negative = text.startswith("-")
    body = text[1:] if text[:1] in ("-", "+") else text
    whole, _, frac = body.partition(".")
    if not whole and not frac:
        raise ValueError(f"empty time value {text!r}")
    if (whole and not whole.isdigit()) or (frac and not frac.isdigit()):
        raise ValueError(f"invalid time value {text!r}")
    micros = int(whole or "0") * 1_000_000 + int((frac + "000000")[:6])
    if negative:
        micros = -micros
    return _EPOCH + timedelta(microseconds=micros)


def guess_content_type(remote: str) -> str:
    content_type, _ = mimetypes.guess_type(remote, strict=False)
    return content_type or DEFAULT_CONTENT_TYPE


def client_options(config: RemoteConfig) -> dict[str, object]:
    """Keyword arguments for ``Session.client("s3", ...)``.

    Both keys empty selects anonymous (unsigned) access, exactly one empty is
    an AuthError. The two ``other-v*-signature`` regions pick the signer for
    S3 clones and must be paired with an endpoint.
    """
    access_key_id = config.access_key_id
    secret_access_key = config.secret_access_key
    anonymous = False
    if not access_key_id and not secret_access_key:
        logger.debug("Using anonymous access for S3")
        anonymous = True
    elif not access_key_id:
        raise AuthError("access_key_id not found")
    elif not secret_access_key:
        raise AuthError("secret_access_key not found")

    endpoint = config.endpoint
    region = config.region
    if not region and not endpoint:
        endpoint = DEFAULT_ENDPOINT
    if not region:
        region = DEFAULT_REGION

    signature_version: object = SIGNATURE_VERSIONS.get(region)
    if signature_version is not None:
        logger.debug("Using %s signatures", signature_version)
        region = DEFAULT_REGION
    if anonymous:
        signature_version = botocore.UNSIGNED

    config_kwargs: dict[str, object] = {
        "region_name": region,
        "retries": {"max_attempts": MAX_RETRIES, "mode": "standard"},
        "user_agent": USER_AGENT,
        "s3": {"addressing_style": "path"},
    }
    if signature_version is not None:
        config_kwargs["signature_version"] = signature_version

    options: dict[str, object] = {
        "region_name": region,
        "config": Config(**config_kwargs),
    }
    if endpoint:
        options["endpoint_url"] = endpoint
    if not anonymous:
        options["aws_access_key_id"] = access_key_id
        options["aws_secret_access_key"] = secret_access_key
    return options


def build_client(
    config: RemoteConfig, session: Optional[boto3.session.Session] = None
):
    options = client_options(config)
    try:
        session = session or boto3.session.Session()
        return session.client("s3", **options)
    except (BotoCoreError, ValueError) as exc:
        raise BackendConnectionError(f"Couldn't create S3 client: {exc}") from exc


class _Unprobed:
    def __repr__(self) -> str:
        return "UNPROBED"


UNPROBED = _Unprobed()


@dataclass(frozen=True)
class Probed:
    metadata: dict[str, str] = field(default_factory=dict)


MetadataState = Union[_Unprobed, Probed]


class S3Fs(Fs, Copier):
    def __init__(
        self,
        name: str,
        client,
        bucket: str,
        root: str = "",
        acl: str = "",
        location_constraint: str = "",
        checkers: int = DEFAULT_BUFFER_SIZE,
        stats: Optional[Stats] = None,
    ) -> None:
        self._name = name
        self._client = client
        self._bucket = bucket
        self._prefix = ""
        self._set_root(root)
        self.acl = acl
        self.location_constraint = location_constraint
        self.checkers = max(1, int(checkers))
        self.stats = stats or Stats()

    def _set_root(self, root: str) -> None:
        root = root.strip("/")
        self._prefix = f"{root}/" if root else ""

    @property
    def name(self) -> str:
        return self._name

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def client(self):
        return self._client

    @property
    def root(self) -> str:
        if not self._prefix:
            return self._bucket
        return f"{self._bucket}/{self._prefix.rstrip('/')}"

    def __str__(self) -> str:
        if not self._prefix:
            return f"S3 bucket {self._bucket}"
        return f"S3 bucket {self._bucket} path {self._prefix}"

    def key_for(self, remote: str) -> str:
        return f"{self._prefix}{remote}"

    def precision(self) -> timedelta:
        return timedelta(microseconds=1)

    def new_object(self, remote: str) -> "S3Object":
        obj = S3Object(self, remote)
        obj.read_metadata()
        return obj

    def _list(self, directories: bool, cursor: ListingCursor) -> None:
        root_length = len(self._prefix)
        while not cursor.cancelled:
            kwargs: dict[str, object] = {
                "Bucket": self._bucket,
                "Prefix": self._prefix,
                "MaxKeys": LIST_CHUNK_SIZE,
            }
            if directories:
                kwargs["Delimiter"] = "/"
            if cursor.marker:
                kwargs["Marker"] = cursor.marker
            try:
                response = self._client.list_objects(**kwargs)
            except (ClientError, BotoCoreError) as exc:
                raise ListingError(
                    f"Couldn't read bucket {self._bucket!r}: {exc}"
                ) from exc

            contents = response.get("Contents") or []
            common_prefixes = response.get("CommonPrefixes") or []
            if directories:
                for entry in common_prefixes:
                    remote = entry.get("Prefix")
                    if remote is None:
                        logger.warning("%s: nil common prefix received", self)
                        continue
                    if not remote.startswith(self._prefix):
                        logger.warning("%s: odd name received %r", self, remote)
                        continue
                    remote = remote[root_length:]
                    if remote.endswith("/"):
                        remote = remote[:-1]
                    if not cursor.emit(Dir(name=remote, bytes=0, count=0)):
                        return
            else:
                for entry in contents:
                    key = entry.get("Key") or ""
                    if not key.startswith(self._prefix):
                        logger.warning("%s: odd name received %r", self, key)
                        continue
                    obj = S3Object.from_listing(self, key[root_length:], entry)
                    if not cursor.emit(obj):
                        return

            if not response.get("IsTruncated"):
                return
            marker = response.get("NextMarker")
            if not marker and contents:
                marker = contents[-1].get("Key")
            if not marker and common_prefixes:
                marker = common_prefixes[-1].get("Prefix")
            if not marker:
                raise ListingError(
                    f"Couldn't read bucket {self._bucket!r}: "
                    "truncated page without a continuation marker"
                )
            cursor.marker = marker

    def list(self) -> ListingStream["S3Object"]:
        if not self._bucket:
            return ListingStream.failed(
                ListingError("Can't list objects at root - choose a bucket using lsd"),
                description=str(self),
                stats=self.stats,
            )
        return ListingStream(
            lambda cursor: self._list(False, cursor),
            buffer_size=self.checkers,
            stats=self.stats,
            description=f"{self} list",
        )

    def _list_buckets(self, cursor: ListingCursor) -> None:
        try:
            response = self._client.list_buckets()
        except (ClientError, BotoCoreError) as exc:
            raise ListingError(f"Couldn't list buckets: {exc}") from exc
        for bucket in response.get("Buckets", []):
            entry = Dir(
                name=bucket.get("Name", ""),
                when=bucket.get("CreationDate"),
                bytes=-1,
                count=-1,
            )
            if not cursor.emit(entry):
                return

    def list_dir(self) -> ListingStream[Dir]:
        if not self._bucket:
            return ListingStream(
                self._list_buckets,
                buffer_size=self.checkers,
                stats=self.stats,
                description=f"{self._name} buckets",
            )
        return ListingStream(
            lambda cursor: self._list(True, cursor),
            buffer_size=self.checkers,
            stats=self.stats,
            description=f"{self} list_dir",
        )

    def put(
        self, stream: BinaryIO, remote: str, mod_time: datetime, size: int
    ) -> "S3Object":
        obj = S3Object(self, remote)
        obj.update(stream, mod_time, size)
        return obj

    def mkdir(self) -> None:
        kwargs: dict[str, object] = {"Bucket": self._bucket}
        if self.acl:
            kwargs["ACL"] = self.acl
        if self.location_constraint:
            kwargs["CreateBucketConfiguration"] = {
                "LocationConstraint": self.location_constraint
            }
        try:
            self._client.create_bucket(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            if classify_error(exc) is ErrorKind.BUCKET_ALREADY_OWNED:
                return
            raise translate_error(exc, f"create bucket {self._bucket}") from exc

    def rmdir(self) -> None:
        if self._prefix:
            return
        try:
            self._client.delete_bucket(Bucket=self._bucket)
        except (ClientError, BotoCoreError) as exc:
            raise translate_error(exc, f"delete bucket {self._bucket}") from exc

    def copy(self, src: Object, remote: str) -> "S3Object":
        if not isinstance(src, S3Object):
            logger.debug("%s: can't copy - not same remote type", src)
            raise CantCopy(f"can't server side copy {src} to {remote}")
        source_fs = src.s3fs
        key = self.key_for(remote)
        try:
            self._client.copy_object(
                Bucket=self._bucket,
                Key=key,
                CopySource={"Bucket": source_fs.bucket, "Key": src.key},
                MetadataDirective="COPY",
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate_error(exc, f"copy {src.key} to {key}") from exc
        return self.new_object(remote)


class S3Object(Object):
    """One stored object.

    Listing fills in etag, size and last modified but leaves the metadata
    unprobed; anything needing user metadata calls ``read_metadata`` first,
    which issues a HEAD once and caches the result.
    """

    def __init__(
        self,
        fs: S3Fs,
        remote: str,
        etag: str = "",
        size: int = 0,
        last_modified: Optional[datetime] = None,
    ) -> None:
        self._fs = fs
        self._remote = remote
        self._etag = etag
        self._size = size
        self._last_modified = last_modified
        self._meta: MetadataState = UNPROBED

    @classmethod
    def from_listing(cls, fs: S3Fs, remote: str, entry: dict) -> "S3Object":
        obj = cls(
            fs,
            remote,
            etag=entry.get("ETag") or "",
            size=int(entry.get("Size") or 0),
        )
        last_modified = entry.get("LastModified")
        if last_modified is None:
            logger.warning("%s: failed to read last modified", obj)
            last_modified = datetime.now(timezone.utc)
        obj._last_modified = last_modified
        return obj

    def __str__(self) -> str:
        return self._remote

    def __repr__(self) -> str:
        return f"S3Object({self._fs.bucket!r}, {self.key!r})"

    @property
    def fs(self) -> Fs:
        return self._fs

    @property
    def s3fs(self) -> S3Fs:
        return self._fs

    @property
    def remote(self) -> str:
        return self._remote

    @property
    def key(self) -> str:
        return self._fs.key_for(self._remote)

    @property
    def etag(self) -> str:
        return self._etag

    @property
    def size(self) -> int:
        return self._size

    @property
    def last_modified(self) -> Optional[datetime]:
        return self._last_modified

    @property
    def metadata_state(self) -> MetadataState:
        return self._meta

    def md5(self) -> str:
        etag = self._etag.lower().strip('"')
        if not _MD5_MATCHER.match(etag):
            # multipart uploads get an etag that isn't the md5 of the content
            return ""
        return etag

    def storable(self) -> bool:
        return True

    def read_metadata(self) -> dict[str, str]:
        if isinstance(self._meta, Probed):
            return self._meta.metadata
        try:
            response = self._fs.client.head_object(
                Bucket=self._fs.bucket, Key=self.key
            )
        except ClientError as exc:
            logger.debug("%s: failed to read info: %s", self, exc)
            if classify_error(exc) is ErrorKind.NOT_FOUND:
                raise NotFound(f"{self.key}: object not found") from exc
            raise ProbeFailure(f"{self.key}: {exc}") from exc
        except BotoCoreError as exc:
            logger.debug("%s: failed to read info: %s", self, exc)
            raise ProbeFailure(f"{self.key}: {exc}") from exc
        # some ceph versions behind apache drop Content-Length, take it as 0
        self._size = int(response.get("ContentLength") or 0)
        self._etag = response.get("ETag") or ""
        last_modified = response.get("LastModified")
        if last_modified is None:
            logger.warning("%s: failed to read last modified from HEAD", self)
            last_modified = datetime.now(timezone.utc)
        self._last_modified = last_modified
        self._meta = Probed(dict(response.get("Metadata") or {}))
        return self._meta.metadata

    def _mtime_value(self, metadata: dict[str, str]) -> Optional[str]:
        for key, value in metadata.items():
            if key.lower() == META_MTIME:
                return value
        return None

    def mod_time(self) -> datetime:
        try:
            metadata = self.read_metadata()
        except (NotFound, ProbeFailure) as exc:
            logger.warning("%s: failed to read metadata: %s", self, exc)
            return datetime.now(timezone.utc)
        value = self._mtime_value(metadata)
        if value is None:
            return self._last_modified or datetime.now(timezone.utc)
        try:
            return float_string_to_time(value)
        except ValueError as exc:
            logger.warning("%s: failed to read mtime from object: %s", self, exc)
            return self._last_modified or datetime.now(timezone.utc)

    def set_mod_time(self, mod_time: datetime) -> None:
        try:
            current = self.read_metadata()
        except (NotFound, ProbeFailure) as exc:
            self._fs.stats.error()
            logger.error("%s: failed to read metadata: %s", self, exc)
            return
        metadata = {
            key: value
            for key, value in current.items()
            if key.lower() != META_MTIME
        }
        metadata[META_MTIME] = time_to_float_string(mod_time)

        kwargs: dict[str, object] = {
            "Bucket": self._fs.bucket,
            "Key": self.key,
            "CopySource": {"Bucket": self._fs.bucket, "Key": self.key},
            "ContentType": guess_content_type(self._remote),
            "Metadata": metadata,
            "MetadataDirective": "REPLACE",
        }
        if self._fs.acl:
            kwargs["ACL"] = self._fs.acl
        try:
            self._fs.client.copy_object(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            self._fs.stats.error()
            logger.error("%s: failed to update remote mtime: %s", self, exc)
            return
        self._meta = Probed(metadata)

    def open(self) -> BinaryIO:
        try:
            response = self._fs.client.get_object(
                Bucket=self._fs.bucket, Key=self.key
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate_error(exc, f"open {self.key}") from exc
        return response["Body"]

    def update(self, stream: BinaryIO, mod_time: datetime, size: int) -> None:
        extra_args: dict[str, object] = {
            "Metadata": {META_MTIME: time_to_float_string(mod_time)},
            "ContentType": guess_content_type(self._remote),
        }
        if self._fs.acl:
            extra_args["ACL"] = self._fs.acl
        # the transfer manager aborts a failed multipart upload, so no parts
        # are left behind
        transfer_config = TransferConfig(
            max_concurrency=UPLOAD_CONCURRENCY, use_threads=True
        )
        logger.debug("%s: uploading %d bytes", self, size)
        try:
            self._fs.client.upload_fileobj(
                stream,
                self._fs.bucket,
                self.key,
                ExtraArgs=extra_args,
                Config=transfer_config,
            )
        except (ClientError, BotoCoreError) as exc:
            raise translate_error(exc, f"upload {self.key}") from exc
        except S3UploadFailedError as exc:
            raise ProviderError(f"upload {self.key}: {exc}") from exc

        self._meta = UNPROBED
        self.read_metadata()

    def remove(self) -> None:
        try:
            self._fs.client.delete_object(Bucket=self._fs.bucket, Key=self.key)
        except (ClientError, BotoCoreError) as exc:
            raise translate_error(exc, f"delete {self.key}") from exc


def new_fs(
    name: str,
    path: str,
    config: RemoteConfig,
    stats: Optional[Stats] = None,
    client=None,
) -> Fs:
    """Build the Fs for ``bucket[/prefix]``.

    When the prefix names an existing object the result is a LimitedFs
    holding just that object, rooted at the object's parent directory.
    """
    bucket, directory = parse_path(path)
    if client is None:
        client = build_client(config)
    fs = S3Fs(
        name,
        client,
        bucket,
        root=directory,
        acl=config.acl,
        location_constraint=config.location_constraint,
        checkers=config.checkers,
        stats=stats,
    )
    if not directory:
        return fs
    try:
        client.head_object(Bucket=bucket, Key=directory)
    except ClientError:
        return fs
    except BotoCoreError as exc:
        raise BackendConnectionError(f"Couldn't reach {fs}: {exc}") from exc
    parent, _, leaf = directory.rpartition("/")
    fs._set_root(parent)
    return LimitedFs(
        fs, fs.new_object(leaf), stats=fs.stats, checkers=fs.checkers
    )
