# tests/test_music/test_aws_wrappers.py

import pytest
from botocore.exceptions import ClientError

from aim.utils.aws import CDNInvalidationError, CloudFrontClient, S3Client, S3StorageError
from tests.fixtures.mocks.aws import FakeBotoCloudFront, FakeBotoS3
from tests.fixtures.settings import BUCKET, DISTRIBUTION, make_settings


class _MissingKeyS3(FakeBotoS3):
    def delete_object(self, *, Bucket, Key):
        raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "gone"}}, "DeleteObject")


def test_s3_requires_bucket():
    with pytest.raises(S3StorageError):
        S3Client(make_settings(AWS_S3_BUCKET_NAME=None), client=FakeBotoS3())


@pytest.mark.parametrize("key", ["", "/", "music/../secrets", "music/a\x00b.mp3"])
def test_unsafe_keys_rejected(key):
    s3 = S3Client(make_settings(), client=FakeBotoS3())
    with pytest.raises(S3StorageError):
        s3.put_bytes(key, b"x", content_type="audio/mpeg")


def test_leading_slash_is_normalized():
    fake = FakeBotoS3()
    S3Client(make_settings(), client=fake).put_bytes("/music//128kbps/a.mp3", b"x", content_type="audio/mpeg")
    assert fake.put_calls[0]["Key"] == "music/128kbps/a.mp3"


def test_put_failure_is_wrapped():
    fake = FakeBotoS3(fail_put_keys={"music/128kbps/a.mp3"})
    s3 = S3Client(make_settings(), client=fake)
    with pytest.raises(S3StorageError) as ei:
        s3.put_bytes("music/128kbps/a.mp3", b"x", content_type="audio/mpeg")
    assert isinstance(ei.value.__cause__, ClientError)


def test_delete_of_missing_object_is_success():
    S3Client(make_settings(), client=_MissingKeyS3()).delete("music/128kbps/a.mp3")


def test_delete_access_denied_raises():
    fake = FakeBotoS3(fail_delete_keys={"music/128kbps/a.mp3"})
    with pytest.raises(S3StorageError):
        S3Client(make_settings(), client=fake).delete("music/128kbps/a.mp3")


def test_presigned_put_with_content_type_and_metadata():
    fake = FakeBotoS3()
    S3Client(make_settings(), client=fake).presigned_put(
        "music/128kbps/a.mp3", content_type="audio/mpeg", expires_in=60, metadata={"bitrate": 128}
    )
    params = fake.presign_calls[0]["Params"]
    assert params["ContentType"] == "audio/mpeg"
    assert params["Metadata"] == {"bitrate": "128"}


def test_object_url_forms():
    assert (
        S3Client(make_settings(AWS_REGION="ap-south-1"), client=FakeBotoS3()).object_url("music/1kbps/a.mp3")
        == f"https://{BUCKET}.s3.ap-south-1.amazonaws.com/music/1kbps/a.mp3"
    )


def test_cloudfront_requires_distribution():
    with pytest.raises(CDNInvalidationError):
        CloudFrontClient(make_settings(AWS_CLOUDFRONT_DISTRIBUTION_ID=None), client=FakeBotoCloudFront())


def test_invalidation_batch_shape():
    fake = FakeBotoCloudFront()
    cdn = CloudFrontClient(make_settings(), client=fake)

    inv_id = cdn.create_invalidation(["music/128kbps/a.*", "/music/128kbps/a.*", "/music/320kbps/a.*"], caller_reference="a-1")

    assert inv_id == "I0001"
    batch = fake.calls[0]["InvalidationBatch"]
    assert batch["CallerReference"] == "a-1"
    assert batch["Paths"] == {"Quantity": 2, "Items": ["/music/128kbps/a.*", "/music/320kbps/a.*"]}
    assert cdn.cdn_url("music/128kbps/a.mp3") == f"https://{DISTRIBUTION}.cloudfront.net/music/128kbps/a.mp3"


def test_invalidation_needs_paths():
    cdn = CloudFrontClient(make_settings(), client=FakeBotoCloudFront())
    with pytest.raises(CDNInvalidationError):
        cdn.create_invalidation([], caller_reference="x")
