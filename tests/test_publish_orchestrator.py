"""End-to-end publish and unpublish flows against in-memory collaborators."""

import copy

import pytest
from conftest import FakeRegistry, FakeSource, FakeTransport, make_storage_config

from blockshare.config_loader import ConfigLoader
from blockshare.errors import ConfigurationError, FetchError, ParseError
from blockshare.models import PublishOptions, ShareRecord, UploadStatus
from blockshare.orchestrator import PublishOrchestrator
from blockshare.storage.client import ObjectStorageClient, content_hash

DOC = '20240101120000-docmain'
DOC2 = '20240101120000-docsecd'
REF = '20240101120001-blk0001'

IMAGE = b'\x89PNG fake image bytes'
OTHER = b'\x89PNG another image'

NATIVE = (
    f'Intro (({REF} "Def"))\n{{: id="p1"}}\n\n'
    '![a](assets/a.png)\n\n'
    '![b](assets/b.png)\n\n'
    '![c](assets/c.png)'
)

CONFIG = {
    'kernel': {'base_url': 'http://127.0.0.1:6806'},
    'share': {'server_url': 'https://share.example.com', 'api_token': 'api'},
}


def url_for(data):
    return f"https://mybucket.s3.amazonaws.com/siyuan-share/1704067200000-{content_hash(data)}.png"


class BrokenSource(FakeSource):
    def fetch_binary(self, local_path):
        raise RuntimeError("disk unavailable")


@pytest.fixture
def source():
    return FakeSource(
        blocks={DOC: NATIVE, REF: 'Definition text', DOC2: '![x](assets/other.png)'},
        binaries={'assets/a.png': IMAGE, 'assets/b.png': IMAGE, 'assets/other.png': IMAGE},
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_orchestrator(fixed_clock, transport):
    def factory(source, storage_config=None, registry=None):
        storage = ObjectStorageClient(
            storage_config or make_storage_config(),
            transport=transport,
            clock=fixed_clock,
        )
        return PublishOrchestrator(
            ConfigLoader.with_defaults(copy.deepcopy(CONFIG)),
            source,
            registry or FakeRegistry(),
            storage=storage,
        )
    return factory


class TestPublish:
    def test_publish_uploads_and_rewrites(self, make_orchestrator, source, transport):
        orchestrator = make_orchestrator(source)
        events = []

        result = orchestrator.publish(
            PublishOptions(doc_id=DOC, doc_title='Main', password='pw', expire_days=30),
            progress_callback=events.append,
        )

        assert transport.methods() == ['PUT']
        assert result.record.share_id == 'share-1'
        assert sorted(a.local_path for a in result.assets) == ['assets/a.png', 'assets/b.png']
        assert {a.object_key for a in result.assets} == {f"siyuan-share/1704067200000-{content_hash(IMAGE)}.png"}
        assert list(result.failed_assets) == ['assets/c.png']
        assert result.partial is True
        assert not result.degraded
        assert events[-1].status == UploadStatus.SUCCESS

        [payload] = orchestrator.registry.payloads
        assert payload.content == (
            'Intro [Def]\n\n'
            f'![a]({url_for(IMAGE)})\n\n'
            f'![b]({url_for(IMAGE)})\n\n'
            '![c](assets/c.png)'
        )
        assert [r.to_dict() for r in payload.references] == [
            {'blockId': REF, 'content': 'Definition text', 'refCount': 1, 'displayText': 'Def'}
        ]
        wire = payload.to_dict()
        assert wire['requirePassword'] is True
        assert wire['password'] == 'pw'
        assert wire['expireDays'] == 30

        assert orchestrator.share_records.get_record_by_doc(DOC).share_id == 'share-1'
        assert len(orchestrator.asset_records.get_mapping(DOC).assets) == 2

    def test_republish_reuses_uploads(self, make_orchestrator, source, transport):
        orchestrator = make_orchestrator(source)
        orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))
        second = orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'), use_cache=False)

        assert transport.methods() == ['PUT']
        assert len(second.assets) == 2
        assert source.fetch_calls.count(DOC) == 2

    def test_same_content_across_documents(self, make_orchestrator, source, transport):
        orchestrator = make_orchestrator(source)
        orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))
        result = orchestrator.publish(PublishOptions(doc_id=DOC2, doc_title='Second'))

        assert transport.methods() == ['PUT']
        [asset] = result.assets
        assert asset.local_path == 'assets/other.png'
        assert asset.public_url == url_for(IMAGE)

    def test_password_not_sent_when_not_required(self, make_orchestrator, source):
        orchestrator = make_orchestrator(source)
        orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main', password=None, is_public=False))

        wire = orchestrator.registry.payloads[0].to_dict()
        assert wire['requirePassword'] is False
        assert wire['password'] == ''
        assert wire['isPublic'] is False

    def test_native_content_cached(self, make_orchestrator, source):
        orchestrator = make_orchestrator(source)
        orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))
        orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))

        assert source.fetch_calls.count(DOC) == 1

    def test_asset_pipeline_failure_degrades(self, make_orchestrator, transport):
        source = BrokenSource(blocks={DOC: NATIVE, REF: 'Definition text'})
        orchestrator = make_orchestrator(source)

        result = orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))

        assert result.degraded is True
        assert result.assets == []
        assert transport.requests == []
        assert '![a](assets/a.png)' in orchestrator.registry.payloads[0].content
        assert any('Assets were not published' in w for w in result.warnings)

    def test_incomplete_storage_config_aborts_before_fetch(self, make_orchestrator, source):
        orchestrator = make_orchestrator(source, storage_config=make_storage_config(bucket=''))

        with pytest.raises(ConfigurationError):
            orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))

        assert source.fetch_calls == []
        assert orchestrator.registry.payloads == []

    def test_document_fetch_failure_aborts(self, make_orchestrator):
        source = FakeSource()
        orchestrator = make_orchestrator(source)

        with pytest.raises(FetchError):
            orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))
        assert orchestrator.registry.payloads == []

    def test_empty_document_rejected(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeSource(blocks={DOC: '{: id="only"}\n'}))

        with pytest.raises(ParseError):
            orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))

    def test_storage_disabled_keeps_local_links(self, make_orchestrator, source, transport):
        orchestrator = make_orchestrator(source, storage_config=make_storage_config(enabled=False))

        result = orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))

        assert transport.requests == []
        assert result.assets == []
        assert '![a](assets/a.png)' in orchestrator.registry.payloads[0].content

    def test_failed_reference_still_publishes(self, make_orchestrator):
        source = FakeSource(blocks={DOC: f'See (({REF}))'}, failing={REF})
        orchestrator = make_orchestrator(source)

        result = orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))

        assert result.references == []
        assert orchestrator.registry.payloads[0].content == 'See [ref]'


class TestUnpublish:
    def test_unpublish_deletes_share_and_objects(self, make_orchestrator, source, transport):
        orchestrator = make_orchestrator(source)
        orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))

        result = orchestrator.unpublish(DOC)

        assert orchestrator.registry.deleted == ['share-1']
        assert transport.methods() == ['PUT', 'DELETE']
        assert result.success == [f"siyuan-share/1704067200000-{content_hash(IMAGE)}.png"]
        assert orchestrator.share_records.get_record_by_doc(DOC) is None
        assert orchestrator.asset_records.get_mapping(DOC) is None

    def test_shared_objects_survive(self, make_orchestrator, source, transport):
        orchestrator = make_orchestrator(source)
        orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))
        orchestrator.publish(PublishOptions(doc_id=DOC2, doc_title='Second'))

        result = orchestrator.unpublish(DOC)

        assert 'DELETE' not in transport.methods()
        assert result.success == []
        assert orchestrator.asset_records.get_mapping(DOC) is None
        assert len(orchestrator.asset_records.get_mapping(DOC2).assets) == 1

    def test_failed_delete_stays_recorded(self, make_orchestrator, source, transport):
        orchestrator = make_orchestrator(source)
        orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))
        transport.status = 500

        result = orchestrator.purge_assets(DOC)

        assert len(result.failed) == 1
        assert orchestrator.asset_records.get_mapping(DOC) is not None

    def test_unknown_document(self, make_orchestrator, source):
        orchestrator = make_orchestrator(source)
        result = orchestrator.unpublish(DOC)

        assert orchestrator.registry.deleted == []
        assert result.success == [] and result.failed == []

    def test_unknown_document_is_looked_up_on_registry(self, make_orchestrator, source):
        registry = FakeRegistry()
        orchestrator = make_orchestrator(source, registry=registry)

        orchestrator.unpublish(DOC)

        assert registry.list_calls == [(1, PublishOrchestrator.LOOKUP_PAGE_SIZE)]

    def test_unpublish_without_local_record(self, make_orchestrator, source):
        remote = ShareRecord('remote-7', 'https://share.example.com/s/remote-7', DOC, 'Main')
        registry = FakeRegistry(shares=[remote])
        orchestrator = make_orchestrator(source, registry=registry)

        orchestrator.unpublish(DOC)

        assert registry.deleted == ['remote-7']
        assert registry.shares == {}

    def test_registry_lookup_walks_pages(self, make_orchestrator, source):
        others = [ShareRecord(f"s{i}", f"https://s/{i}", f"doc-{i}", 'Other') for i in range(120)]
        target = ShareRecord('wanted', 'https://s/wanted', DOC, 'Main')
        registry = FakeRegistry(shares=others + [target])
        orchestrator = make_orchestrator(source, registry=registry)

        assert orchestrator.find_record(DOC) == target
        assert [page for page, _ in registry.list_calls] == [1, 2, 3]

    def test_unpublish_many_uses_one_batch_call(self, make_orchestrator, source, transport):
        registry = FakeRegistry()
        orchestrator = make_orchestrator(source, registry=registry)
        orchestrator.publish(PublishOptions(doc_id=DOC, doc_title='Main'))
        orchestrator.publish(PublishOptions(doc_id=DOC2, doc_title='Second'))

        outcome, result = orchestrator.unpublish_many([DOC, DOC2, 'missing-doc'])

        assert outcome == {'deleted': ['share-1', 'share-2'], 'notFound': []}
        assert registry.deleted == ['share-1', 'share-2']
        assert orchestrator.share_records.list_records() == []
        assert transport.methods() == ['PUT', 'DELETE']
        assert result.success == [f"siyuan-share/1704067200000-{content_hash(IMAGE)}.png"]
        assert orchestrator.asset_records.get_all_mappings() == []

    def test_unpublish_many_forgets_shares_the_registry_lost(self, make_orchestrator, source):
        orchestrator = make_orchestrator(source)
        orchestrator.share_records.add_record(ShareRecord('gone', 'https://s/gone', DOC, 'Main'))

        outcome, _ = orchestrator.unpublish_many([DOC])

        assert outcome == {'deleted': [], 'notFound': ['gone']}
        assert orchestrator.share_records.get_record('gone') is None


class TestSync:
    def test_sync_replaces_local_records(self, make_orchestrator, source):
        remote = [ShareRecord(f"r{i}", f"https://s/r{i}", f"doc-{i}", 'Remote') for i in range(3)]
        registry = FakeRegistry(shares=remote)
        orchestrator = make_orchestrator(source, registry=registry)
        orchestrator.share_records.add_record(ShareRecord('stale', 'https://s/stale', DOC, 'Main'))

        records = orchestrator.list_shares(sync=True)

        assert sorted(r.share_id for r in records) == ['r0', 'r1', 'r2']
        assert orchestrator.share_records.get_record('stale') is None
        assert registry.list_calls == [(1, PublishOrchestrator.SYNC_PAGE_SIZE)]

    def test_list_without_sync_stays_local(self, make_orchestrator, source):
        registry = FakeRegistry(shares=[ShareRecord('r0', 'https://s/r0', 'doc-0', 'Remote')])
        orchestrator = make_orchestrator(source, registry=registry)

        assert orchestrator.list_shares() == []
        assert registry.list_calls == []
