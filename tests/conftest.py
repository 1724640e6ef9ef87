"""Shared fixtures: fake boto3 clients and a small site directory."""

from __future__ import annotations

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
from botocore.exceptions import ClientError


STACK_NAME = "www-example-com-confetti-static-site"
STACK_ID = f"arn:aws:cloudformation:us-east-1:123456789012:stack/{STACK_NAME}/abc"


def md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def stack_event(n: int, logical: str, status: str, rtype: str = "AWS::S3::Bucket") -> dict:
    is_stack = logical == STACK_NAME
    return {
        "EventId": f"e{n}",
        "StackId": STACK_ID,
        "StackName": STACK_NAME,
        "LogicalResourceId": logical,
        "PhysicalResourceId": STACK_ID if is_stack else f"{logical.lower()}-phys",
        "ResourceType": "AWS::CloudFormation::Stack" if is_stack else rtype,
        "ResourceStatus": status,
        "Timestamp": datetime(2024, 1, 1, 12, 0, n),
    }


class FakePaginator:
    def __init__(self, pages: list[dict]) -> None:
        self.pages = pages

    def paginate(self, **kwargs: Any):
        return iter(self.pages)


class FakeS3:
    def __init__(self, objects: dict[str, bytes] | None = None, page_size: int = 2) -> None:
        self.objects = dict(objects or {})
        self.page_size = page_size
        self.put_calls: list[dict] = []
        self.delete_calls: list[list[str]] = []
        self.delete_errors: list[dict] = []
        self.list_error: str | None = None

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "list_objects_v2"
        if self.list_error:
            raise ClientError({"Error": {"Code": self.list_error, "Message": "nope"}}, "ListObjectsV2")
        keys = sorted(self.objects)
        pages = [
            {
                "Contents": [
                    {"Key": k, "ETag": f'"{md5(self.objects[k])}"'}
                    for k in keys[i: i + self.page_size]
                ]
            }
            for i in range(0, len(keys), self.page_size)
        ]
        return FakePaginator(pages or [{"KeyCount": 0}])

    def put_object(self, Bucket: str, Key: str, Body, **extra: Any) -> dict:
        self.objects[Key] = Body.read()
        self.put_calls.append({"Bucket": Bucket, "Key": Key, **extra})
        return {"ETag": f'"{md5(self.objects[Key])}"'}

    def delete_objects(self, Bucket: str, Delete: dict) -> dict:
        keys = [o["Key"] for o in Delete["Objects"]]
        self.delete_calls.append(keys)
        for k in keys:
            self.objects.pop(k, None)
        return {"Errors": self.delete_errors} if self.delete_errors else {}


class FakeCloudFormation:
    """Serves one snapshot of the stack's events (newest first) per poll."""

    def __init__(
        self,
        snapshots: list[list[dict]] | None = None,
        outputs: list[dict] | None = None,
        page_size: int = 100,
        throttles: int = 0,
        error_code: str | None = None,
        exists: bool = False,
    ) -> None:
        self.snapshots = snapshots or [[]]
        self.outputs = outputs or []
        self.page_size = page_size
        self.throttles = throttles
        self.error_code = error_code
        self.exists = exists
        self.create_calls: list[dict] = []
        self.polls = 0
        self._current: list[dict] = []

    def create_stack(self, **kwargs: Any) -> dict:
        self.create_calls.append(kwargs)
        if self.exists:
            raise ClientError(
                {
                    "Error": {
                        "Code": "AlreadyExistsException",
                        "Message": f"Stack [{kwargs['StackName']}] already exists",
                    }
                },
                "CreateStack",
            )
        return {"StackId": STACK_ID}

    def describe_stacks(self, StackName: str) -> dict:
        return {"Stacks": [{"StackId": STACK_ID, "Outputs": self.outputs}]}

    def describe_stack_events(self, StackName: str, NextToken: str | None = None) -> dict:
        if self.error_code:
            raise ClientError({"Error": {"Code": self.error_code, "Message": "boom"}}, "DescribeStackEvents")
        if self.throttles:
            self.throttles -= 1
            raise ClientError({"Error": {"Code": "Throttling", "Message": "Rate exceeded"}}, "DescribeStackEvents")
        if NextToken is None:
            self._current = self.snapshots[min(self.polls, len(self.snapshots) - 1)]
            self.polls += 1
            start = 0
        else:
            start = int(NextToken)
        resp: dict = {"StackEvents": self._current[start: start + self.page_size]}
        if start + self.page_size < len(self._current):
            resp["NextToken"] = str(start + self.page_size)
        return resp


@pytest.fixture(autouse=True)
def clean_aws_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def creds() -> dict[str, str]:
    return {"access_key": "AKIATEST", "secret_key": "secret"}


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    (root / "css").mkdir(parents=True)
    (root / "index.html").write_text("<h1>hi</h1>", encoding="utf-8")
    (root / "css" / "app.css").write_text("body{}", encoding="utf-8")
    return root


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()
