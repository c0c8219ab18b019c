"""
FileStoragePort：
- key 生成（sanitize + 日期分区 + uuid）
- LocalFileStorageAdapter：存取一致、删除后不存在、路径穿越、presigned 不支持
- S3FileStorageAdapter：boto3 client 用 MagicMock 替代
"""

import io
import re
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from portal.exceptions import NotFound, StorageFailure, Unsupported, ValidationFailure
from portal.storage import build_storage_key, get_file_storage, sanitize_file_name
from portal.storage.adapters import LocalFileStorageAdapter, S3FileStorageAdapter


def client_error(code, operation='GetObject'):
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


# ── key ───────────────────────────────────────────────────────────────────

class TestStorageKey:

    @pytest.mark.parametrize('name,expected', [
        ('consent form (v2).pdf', 'consent_form__v2_.pdf'),
        ('../../etc/passwd', '.._.._etc_passwd'),
        ('plain-name_1.PNG', 'plain-name_1.PNG'),
        ('', 'file'),
        (None, 'file'),
    ])
    def test_sanitize(self, name, expected):
        assert sanitize_file_name(name) == expected

    def test_key_layout(self):
        key = build_storage_key('a b.pdf', now=datetime(2024, 3, 9, tzinfo=timezone.utc))
        assert re.fullmatch(r'forms/2024/03/[0-9a-f-]{36}-a_b\.pdf', key)

    def test_prefix(self):
        assert build_storage_key('x.png', prefix='attachments').startswith('attachments/')

    def test_keys_never_repeat(self):
        keys = {build_storage_key('same.pdf') for _ in range(2000)}
        assert len(keys) == 2000


# ── local ─────────────────────────────────────────────────────────────────

class TestLocalFileStorageAdapter:

    @pytest.fixture
    def storage(self, tmp_path):
        return LocalFileStorageAdapter(root=str(tmp_path))

    def test_store_then_retrieve_is_byte_identical(self, storage):
        content = b'%PDF-1.4\x00\xffbinary'
        key = storage.store_file('form.pdf', 'application/pdf', io.BytesIO(content), len(content))

        with storage.retrieve_file(key) as stream:
            assert stream.read() == content
        # 每次 retrieve 都是新的流
        with storage.retrieve_file(key) as stream:
            assert stream.read() == content

    def test_same_name_twice_gives_two_keys(self, storage):
        first = storage.store_file('a.pdf', 'application/pdf', io.BytesIO(b'1'), 1)
        second = storage.store_file('a.pdf', 'application/pdf', io.BytesIO(b'2'), 1)

        assert first != second
        assert storage.retrieve_file(first).read() == b'1'
        assert storage.retrieve_file(second).read() == b'2'

    def test_delete_then_exists_is_false(self, storage):
        key = storage.store_file('a.pdf', 'application/pdf', io.BytesIO(b'data'), 4)
        assert storage.file_exists(key) is True

        storage.delete_file(key)

        assert storage.file_exists(key) is False
        with pytest.raises(NotFound):
            storage.retrieve_file(key)

    def test_delete_missing_key_is_noop(self, storage):
        storage.delete_file('forms/2024/01/missing.pdf')

    def test_retrieve_missing_key(self, storage):
        with pytest.raises(NotFound) as exc_info:
            storage.retrieve_file('forms/2024/01/missing.pdf')
        assert exc_info.value.code == 'FILE_NOT_FOUND'

    def test_path_traversal_rejected(self, storage):
        with pytest.raises(ValidationFailure):
            storage.retrieve_file('../../etc/passwd')
        assert storage.file_exists('../outside') is False

    def test_presigned_url_unsupported(self, storage):
        with pytest.raises(Unsupported) as exc_info:
            storage.generate_presigned_url('forms/x', 60)
        assert exc_info.value.http_status == 501

    def test_write_error_becomes_storage_failure(self, tmp_path):
        blocker = tmp_path / 'not-a-dir'
        blocker.write_text('x')
        storage = LocalFileStorageAdapter(root=str(blocker))

        with pytest.raises(StorageFailure) as exc_info:
            storage.store_file('a.pdf', 'application/pdf', io.BytesIO(b'x'), 1)
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_factory_uses_configured_root(self, settings, tmp_path):
        storage = get_file_storage()
        assert isinstance(storage, LocalFileStorageAdapter)
        assert str(storage.root) == str((tmp_path / 'storage').resolve())


# ── s3 ────────────────────────────────────────────────────────────────────

class TestS3FileStorageAdapter:

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def storage(self, client):
        return S3FileStorageAdapter(bucket_name='portal-forms', region='us-east-1', client=client)

    def test_store_puts_object_with_encryption(self, storage, client):
        key = storage.store_file('form.pdf', 'application/pdf', io.BytesIO(b'abc'), 3)

        kwargs = client.put_object.call_args.kwargs
        assert kwargs['Bucket'] == 'portal-forms'
        assert kwargs['Key'] == key
        assert kwargs['ContentLength'] == 3
        assert kwargs['ContentType'] == 'application/pdf'
        assert kwargs['ServerSideEncryption'] == 'AES256'
        assert key.startswith('forms/')

    def test_missing_bucket_created_once(self, storage, client):
        client.head_bucket.side_effect = client_error('404', 'HeadBucket')

        storage.store_file('a.pdf', 'application/pdf', io.BytesIO(b'a'), 1)
        storage.store_file('b.pdf', 'application/pdf', io.BytesIO(b'b'), 1)

        client.create_bucket.assert_called_once_with(Bucket='portal-forms')
        assert client.head_bucket.call_count == 1

    def test_unreachable_endpoint_on_bucket_check_is_only_a_warning(self, storage, client):
        client.head_bucket.side_effect = EndpointConnectionError(endpoint_url='http://minio:9000')
        storage.store_file('a.pdf', 'application/pdf', io.BytesIO(b'a'), 1)
        client.put_object.assert_called_once()

    def test_put_failure_becomes_storage_failure(self, storage, client):
        client.put_object.side_effect = client_error('AccessDenied', 'PutObject')
        with pytest.raises(StorageFailure):
            storage.store_file('a.pdf', 'application/pdf', io.BytesIO(b'a'), 1)

    def test_retrieve_returns_body(self, storage, client):
        body = io.BytesIO(b'content')
        client.get_object.return_value = {'Body': body}
        assert storage.retrieve_file('forms/k').read() == b'content'

    def test_retrieve_no_such_key(self, storage, client):
        client.get_object.side_effect = client_error('NoSuchKey')
        with pytest.raises(NotFound):
            storage.retrieve_file('forms/k')

    def test_retrieve_other_error(self, storage, client):
        client.get_object.side_effect = client_error('InternalError')
        with pytest.raises(StorageFailure):
            storage.retrieve_file('forms/k')

    def test_file_exists(self, storage, client):
        assert storage.file_exists('forms/k') is True
        client.head_object.side_effect = client_error('404', 'HeadObject')
        assert storage.file_exists('forms/k') is False

    def test_delete(self, storage, client):
        storage.delete_file('forms/k')
        client.delete_object.assert_called_once_with(Bucket='portal-forms', Key='forms/k')

    def test_presigned_url(self, storage, client):
        client.generate_presigned_url.return_value = 'https://s3/signed'

        assert storage.generate_presigned_url('forms/k', 300) == 'https://s3/signed'
        client.generate_presigned_url.assert_called_once_with(
            'get_object', Params={'Bucket': 'portal-forms', 'Key': 'forms/k'}, ExpiresIn=300,
        )
