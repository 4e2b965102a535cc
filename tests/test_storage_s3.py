from __future__ import annotations

import io
from datetime import UTC, datetime

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber
from fastapi import HTTPException

from octetbucket.services.blobs import Upload, store_upload
from octetbucket.storage.base import (
    BlobNotFoundError,
    BlobStoreError,
    BlobStoreUnavailableError,
    StoredBlob,
)
from octetbucket.storage.s3 import S3BlobStore, S3Config

KEY = "ba7816bf8f01"
OBJECT = {"Bucket": "octetbucket-test", "Key": f"Storage/{KEY}"}


@pytest.fixture()
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


@pytest.fixture()
def store(s3_client) -> S3BlobStore:
    config = S3Config(
        endpoint_url="http://localhost:9000",
        access_key_id="test",
        secret_access_key="test",
        bucket="octetbucket-test",
        namespace="Storage",
    )
    return S3BlobStore(config, client=s3_client)


def _record() -> StoredBlob:
    return StoredBlob(
        key=KEY,
        created=datetime(2026, 10, 19, 9, 30, tzinfo=UTC),
        remote_addr="198.51.100.7",
        user_agent="curl/8.5.0",
        file_name="résumé final.pdf",
        content_type="application/pdf",
        size=3,
        data=b"abc",
    )


def test_exists_uses_head_object(store: S3BlobStore, s3_client) -> None:
    with Stubber(s3_client) as stubber:
        stubber.add_response("head_object", {"ContentLength": 3}, OBJECT)
        stubber.add_client_error(
            "head_object", service_error_code="404", http_status_code=404, expected_params=OBJECT
        )
        assert store.exists(key=KEY) is True
        assert store.exists(key=KEY) is False
        stubber.assert_no_pending_responses()


def test_exists_with_rejected_credentials_is_unavailable(store: S3BlobStore, s3_client) -> None:
    with Stubber(s3_client) as stubber:
        stubber.add_client_error(
            "head_object", service_error_code="403", http_status_code=403, expected_params=OBJECT
        )
        with pytest.raises(BlobStoreUnavailableError):
            store.exists(key=KEY)


def test_upload_with_rejected_credentials_is_internal_error(store: S3BlobStore, s3_client) -> None:
    upload = Upload(data=b"abc", file_name="abc.txt", content_type="text/plain")
    with Stubber(s3_client) as stubber:
        stubber.add_client_error(
            "head_object", service_error_code="403", http_status_code=403, expected_params=OBJECT
        )
        with pytest.raises(HTTPException) as excinfo:
            store_upload(store=store, upload=upload, remote_addr="198.51.100.7", user_agent="")
    assert excinfo.value.status_code == 500


def test_exists_surfaces_other_errors(store: S3BlobStore, s3_client) -> None:
    with Stubber(s3_client) as stubber:
        stubber.add_client_error(
            "head_object", service_error_code="400", http_status_code=400, expected_params=OBJECT
        )
        with pytest.raises(BlobStoreError) as excinfo:
            store.exists(key=KEY)
    assert not isinstance(excinfo.value, BlobStoreUnavailableError)


def test_put_then_get_round_trips_metadata(store: S3BlobStore, s3_client) -> None:
    record = _record()
    metadata = {
        "created": "2026-10-19T09:30:00+00:00",
        "remote-addr": "198.51.100.7",
        "user-agent": "curl%2F8.5.0",
        "file-name": "r%C3%A9sum%C3%A9%20final.pdf",
        "content-type": "application%2Fpdf",
    }
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object", {}, {**OBJECT, "Body": b"abc", "Metadata": metadata}
        )
        stubber.add_response(
            "get_object",
            {"Body": StreamingBody(io.BytesIO(b"abc"), 3), "Metadata": metadata},
            OBJECT,
        )
        store.put(record=record)
        assert store.get(key=KEY) == record


def test_get_missing_object_is_not_found(store: S3BlobStore, s3_client) -> None:
    with Stubber(s3_client) as stubber:
        stubber.add_client_error(
            "get_object", service_error_code="NoSuchKey", http_status_code=404, expected_params=OBJECT
        )
        with pytest.raises(BlobNotFoundError):
            store.get(key=KEY)


def test_put_rejected_by_size_limit_is_store_error(store: S3BlobStore, s3_client) -> None:
    with Stubber(s3_client) as stubber:
        stubber.add_client_error(
            "put_object", service_error_code="EntityTooLarge", http_status_code=400
        )
        with pytest.raises(BlobStoreError) as excinfo:
            store.put(record=_record())
    assert not isinstance(excinfo.value, BlobStoreUnavailableError)


def test_put_access_denied_is_unavailable(store: S3BlobStore, s3_client) -> None:
    with Stubber(s3_client) as stubber:
        stubber.add_client_error(
            "put_object", service_error_code="AccessDenied", http_status_code=403
        )
        with pytest.raises(BlobStoreUnavailableError):
            store.put(record=_record())


def test_delete_removes_object(store: S3BlobStore, s3_client) -> None:
    with Stubber(s3_client) as stubber:
        stubber.add_response("delete_object", {}, OBJECT)
        store.delete(key=KEY)
        stubber.assert_no_pending_responses()
