"""Shared fakes for the kernel, the share registry and the object store."""

import threading
from datetime import datetime, timezone

import pytest

from blockshare.errors import FetchError, NetworkTransportError
from blockshare.models import ShareRecord, StorageConfig, StorageProvider
from blockshare.sources.base_source import ContentSource, ShareRegistry
from blockshare.storage.transport import HttpResponse, Transport

FIXED_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeSource(ContentSource):
    """In-memory kernel: block kramdown, asset bytes and a recording forward proxy."""

    def __init__(self, blocks=None, binaries=None, failing=(), proxy_status=200):
        self.blocks = dict(blocks or {})
        self.binaries = dict(binaries or {})
        self.failing = set(failing)
        self.proxy_status = proxy_status
        self.fetch_calls = []
        self.binary_calls = []
        self.proxy_calls = []
        self._lock = threading.Lock()

    def fetch_block_content(self, block_id, timeout=None):
        with self._lock:
            self.fetch_calls.append(block_id)
        if block_id in self.failing or block_id not in self.blocks:
            raise FetchError(f"cannot fetch {block_id}", target=block_id)
        return self.blocks[block_id]

    def fetch_binary(self, local_path):
        with self._lock:
            self.binary_calls.append(local_path)
        if local_path not in self.binaries:
            raise FetchError(f"missing asset {local_path}", target=local_path)
        return self.binaries[local_path]

    def forward_proxy(self, url, method, headers, payload_b64):
        self.proxy_calls.append({'url': url, 'method': method, 'headers': headers, 'payload': payload_b64})
        return {'status': self.proxy_status}


class FakeRegistry(ShareRegistry):
    """In-memory registry; ``shares`` is what the server lists, ``list_calls`` the pages asked for."""

    def __init__(self, shares=()):
        self.payloads = []
        self.deleted = []
        self.list_calls = []
        self.shares = {record.share_id: record for record in shares}

    def create_share(self, payload):
        self.payloads.append(payload)
        share_id = f"share-{len(self.payloads)}"
        record = ShareRecord.from_response(
            {'shareId': share_id, 'shareUrl': f"https://share.example.com/s/{share_id}"},
            payload
        )
        self.shares[share_id] = record
        return record

    def delete_share(self, share_id):
        self.deleted.append(share_id)
        return self.shares.pop(share_id, None) is not None

    def delete_shares(self, share_ids):
        self.deleted.extend(share_ids)
        found = [sid for sid in share_ids if self.shares.pop(sid, None) is not None]
        return {'deleted': found, 'notFound': [sid for sid in share_ids if sid not in found]}

    def list_shares(self, page=1, size=100):
        self.list_calls.append((page, size))
        records = list(self.shares.values())
        start = (page - 1) * size
        return records[start:start + size], len(records)


class FakeTransport(Transport):
    """
    Records requests and answers from a per-method status table.

    ``fail_with_network_error`` makes every send raise NetworkTransportError.
    ``statuses_by_key`` overrides the status for URLs ending in a given key.
    """

    def __init__(self, status=200, fail_with_network_error=False, statuses_by_key=None):
        self.status = status
        self.fail_with_network_error = fail_with_network_error
        self.statuses_by_key = dict(statuses_by_key or {})
        self.requests = []

    def send(self, request, progress=None):
        self.requests.append(request)
        if self.fail_with_network_error:
            raise NetworkTransportError("connection refused", url=request.url)
        if progress is not None and request.body:
            half = len(request.body) // 2
            if half:
                progress(half)
            progress(len(request.body))
        for key, status in self.statuses_by_key.items():
            if request.url.endswith(key):
                return HttpResponse(status_code=status)
        return HttpResponse(status_code=self.status)

    def methods(self):
        return [r.method for r in self.requests]


def make_storage_config(**overrides):
    values = dict(
        enabled=True,
        endpoint='s3.amazonaws.com',
        region='us-east-1',
        bucket='mybucket',
        access_key_id='AKIDEXAMPLE',
        secret_access_key='wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY',
        provider=StorageProvider.AWS,
    )
    values.update(overrides)
    return StorageConfig(**values)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def storage_config():
    return make_storage_config()


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def fake_registry():
    return FakeRegistry()


@pytest.fixture
def fake_transport():
    return FakeTransport()
