"""
In-memory stand-ins for the boto3 S3 and CloudFront clients
===========================================================
They sit *under* `aim.utils.aws.S3Client` / `CloudFrontClient` (injected via
`client=`), so the real wrappers, key normalization and error wrapping are
exercised while no network call is made.

FakeBotoS3
    put_object / delete_object / generate_presigned_url / get_paginator
    `fail_put_keys` / `fail_delete_keys` → raise on those keys
    `block_put_keys` → put waits on `release` (simulates a hung PUT)
FakeBotoCloudFront
    create_invalidation, `fail=True` → raise
Both record every call for assertions.
"""

import threading
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError


class FakeBotoS3:
    def __init__(self, *, fail_put_keys=None, fail_delete_keys=None, block_put_keys=None, page_size: int = 1000):
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.fail_put_keys = set(fail_put_keys or [])
        self.fail_delete_keys = set(fail_delete_keys or [])
        self.block_put_keys = set(block_put_keys or [])
        self.release = threading.Event()
        self.page_size = page_size
        self.put_calls: List[Dict[str, Any]] = []
        self.delete_calls: List[str] = []
        self.presign_calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def put_object(self, **kwargs):
        with self._lock:
            self.put_calls.append(kwargs)
        key = kwargs["Key"]
        if key in self.fail_put_keys:
            raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject")
        if key in self.block_put_keys:
            self.release.wait(timeout=5)
        with self._lock:
            self.objects[key] = {
                "Body": kwargs["Body"],
                "ContentType": kwargs.get("ContentType"),
                "Metadata": kwargs.get("Metadata", {}),
            }
        return {"ETag": '"fake"'}

    def delete_object(self, *, Bucket, Key):
        with self._lock:
            self.delete_calls.append(Key)
        if Key in self.fail_delete_keys:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject")
        with self._lock:
            # S3 answers 204 for missing keys as well
            self.objects.pop(Key, None)
        return {}

    def generate_presigned_url(self, *, ClientMethod, Params, ExpiresIn, HttpMethod=None):
        self.presign_calls.append(
            {"ClientMethod": ClientMethod, "Params": Params, "ExpiresIn": ExpiresIn, "HttpMethod": HttpMethod}
        )
        return f"https://{Params['Bucket']}.s3.amazonaws.com/{Params['Key']}?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=fake"

    def get_paginator(self, name: str):
        assert name == "list_objects_v2"
        return _FakePaginator(self)


class _FakePaginator:
    def __init__(self, s3: FakeBotoS3):
        self.s3 = s3

    def paginate(self, *, Bucket, Prefix):
        keys = sorted(k for k in self.s3.objects if k.startswith(Prefix))
        size = self.s3.page_size
        if not keys:
            yield {"KeyCount": 0}
            return
        for i in range(0, len(keys), size):
            chunk = keys[i:i + size]
            yield {"Contents": [{"Key": k, "Size": len(self.s3.objects[k]["Body"])} for k in chunk]}


class FakeBotoCloudFront:
    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    def create_invalidation(self, *, DistributionId, InvalidationBatch):
        self.calls.append({"DistributionId": DistributionId, "InvalidationBatch": InvalidationBatch})
        if self.fail:
            raise ClientError({"Error": {"Code": "TooManyInvalidationsInProgress", "Message": "slow down"}}, "CreateInvalidation")
        return {"Invalidation": {"Id": f"I{len(self.calls):04d}", "Status": "InProgress"}}

    @property
    def last_paths(self) -> Optional[List[str]]:
        if not self.calls:
            return None
        return self.calls[-1]["InvalidationBatch"]["Paths"]["Items"]
