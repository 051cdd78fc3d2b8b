"""Request signing against known-good signatures."""

import unittest
from datetime import datetime, timezone

from blockshare.errors import SigningError
from blockshare.models import StorageProvider
from blockshare.storage.signing import (
    UNSIGNED_PAYLOAD,
    AwsSigV4Signer,
    OssSigner,
    RequestDescription,
    create_signer,
)
from conftest import make_storage_config

ACCESS_KEY = 'AKIDEXAMPLE'
SECRET_KEY = 'wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY'
KEY = 'siyuan-share/1704067200000-0123456789abcdef.png'
NOW = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class TestAwsSigV4Signer(unittest.TestCase):
    def setUp(self):
        self.signer = AwsSigV4Signer(ACCESS_KEY, SECRET_KEY, 'us-east-1')
        self.request = RequestDescription(
            method='PUT',
            host='mybucket.s3.amazonaws.com',
            canonical_uri='/' + KEY,
            bucket='mybucket',
            key=KEY,
            content_type='image/png',
        )

    def test_canonical_request(self):
        canonical = self.signer.canonical_request(self.request, '20240101T000000Z')
        self.assertEqual(canonical, '\n'.join([
            'PUT',
            '/' + KEY,
            '',
            'host:mybucket.s3.amazonaws.com',
            'x-amz-content-sha256:UNSIGNED-PAYLOAD',
            'x-amz-date:20240101T000000Z',
            '',
            'host;x-amz-content-sha256;x-amz-date',
            'UNSIGNED-PAYLOAD',
        ]))

    def test_string_to_sign(self):
        canonical = self.signer.canonical_request(self.request, '20240101T000000Z')
        to_sign = self.signer.string_to_sign(canonical, '20240101T000000Z', '20240101')
        self.assertEqual(to_sign, '\n'.join([
            'AWS4-HMAC-SHA256',
            '20240101T000000Z',
            '20240101/us-east-1/s3/aws4_request',
            '4c8972dd9dd618c2b9893de9fe0782a16d32872a50a70038b0742e82ac56f95e',
        ]))

    def test_known_signature(self):
        headers = self.signer.sign(self.request, NOW)

        self.assertEqual(headers['x-amz-date'], '20240101T000000Z')
        self.assertEqual(headers['x-amz-content-sha256'], UNSIGNED_PAYLOAD)
        self.assertEqual(headers['Content-Type'], 'image/png')
        self.assertEqual(
            headers['Authorization'],
            'AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20240101/us-east-1/s3/aws4_request, '
            'SignedHeaders=host;x-amz-content-sha256;x-amz-date, '
            'Signature=2568340a6af2fd51b6fa8a7fc4e5444e6249c744f9798722d059dadc47f63626'
        )

    def test_naive_time_is_utc(self):
        naive = datetime(2024, 1, 1, 0, 0, 0)
        self.assertEqual(self.signer.sign(self.request, naive), self.signer.sign(self.request, NOW))

    def test_signature_depends_on_time(self):
        later = datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
        self.assertNotEqual(
            self.signer.sign(self.request, NOW)['Authorization'],
            self.signer.sign(self.request, later)['Authorization'],
        )

    def test_missing_region(self):
        signer = AwsSigV4Signer(ACCESS_KEY, SECRET_KEY, '')
        with self.assertRaises(SigningError):
            signer.sign(self.request, NOW)


class TestOssSigner(unittest.TestCase):
    def setUp(self):
        self.signer = OssSigner(ACCESS_KEY, SECRET_KEY)

    def _request(self, method, content_type):
        return RequestDescription(
            method=method,
            host='mybucket.oss-cn-hangzhou.aliyuncs.com',
            canonical_uri='/' + KEY,
            bucket='mybucket',
            key=KEY,
            content_type=content_type,
        )

    def test_string_to_sign(self):
        to_sign = self.signer.string_to_sign(self._request('PUT', 'image/png'), 'Mon, 01 Jan 2024 00:00:00 GMT')
        self.assertEqual(to_sign, f'PUT\n\nimage/png\nMon, 01 Jan 2024 00:00:00 GMT\n/mybucket/{KEY}')

    def test_known_put_signature(self):
        headers = self.signer.sign(self._request('PUT', 'image/png'), NOW)
        self.assertEqual(headers['Date'], 'Mon, 01 Jan 2024 00:00:00 GMT')
        self.assertEqual(headers['Authorization'], 'OSS AKIDEXAMPLE:4ajg/bFJPoFvxUk3DGCkCpgxODw=')
        self.assertEqual(headers['Content-Type'], 'image/png')

    def test_known_delete_signature(self):
        headers = self.signer.sign(self._request('DELETE', ''), NOW)
        self.assertEqual(headers['Authorization'], 'OSS AKIDEXAMPLE:pCayeBXvED16YmINyM4dUfBK4D8=')
        self.assertNotIn('Content-Type', headers)


class TestCreateSigner(unittest.TestCase):
    def test_provider_selects_strategy(self):
        self.assertIsInstance(create_signer(make_storage_config()), AwsSigV4Signer)
        self.assertIsInstance(create_signer(make_storage_config(provider=StorageProvider.OSS)), OssSigner)


if __name__ == '__main__':
    unittest.main()
