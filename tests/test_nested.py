"""
Tests for nested stack discovery.
"""

import pytest

from cftail.errors import ClassifiedError, ErrorKind, ResourceFetchError
from cftail.nested import build_stack_info, resolve_nested_stacks
from fakes import FakeStackClient, make_resource

STACK = "AWS::CloudFormation::Stack"


def nested_graph():
    """root -> A -> B, B has no children."""
    return {
        "root": [
            make_resource("root", "AWS::S3::Bucket", "bucket-1"),
            make_resource("root", STACK, "arn:stack/A"),
        ],
        "arn:stack/A": [
            make_resource("A", "AWS::SQS::Queue", "queue-1"),
            make_resource("A", STACK, "arn:stack/B"),
        ],
        "arn:stack/B": [
            make_resource("B", "AWS::SNS::Topic", "topic-1"),
        ],
    }


class TestResolveNestedStacks:
    """Test walking the nested stack graph."""

    def test_chain(self):
        client = FakeStackClient(resources=nested_graph())
        assert resolve_nested_stacks(client, "root") == {"root", "A", "B"}

    def test_no_children(self):
        client = FakeStackClient(resources={"root": [make_resource("root", "AWS::S3::Bucket", "b")]})
        assert resolve_nested_stacks(client, "root") == {"root"}
        assert client.resource_calls == ["root"]

    def test_missing_physical_id_is_skipped(self):
        resources = nested_graph()
        resources["arn:stack/A"].append(make_resource("A", STACK, None, "NotCreatedYet"))
        client = FakeStackClient(resources=resources)

        assert resolve_nested_stacks(client, "root") == {"root", "A", "B"}
        assert None not in client.resource_calls

    def test_missing_physical_id_under_root(self):
        client = FakeStackClient(resources={"root": [make_resource("root", STACK, None, "Pending")]})
        assert resolve_nested_stacks(client, "root") == {"root"}

    def test_duplicate_physical_ids_expanded_once(self):
        resources = nested_graph()
        resources["root"].append(make_resource("root", STACK, "arn:stack/B"))
        client = FakeStackClient(resources=resources)

        assert resolve_nested_stacks(client, "root") == {"root", "A", "B"}
        assert client.resource_calls.count("arn:stack/B") == 1

    def test_siblings(self):
        resources = {
            "root": [make_resource("root", STACK, "arn:stack/A"), make_resource("root", STACK, "arn:stack/C")],
            "arn:stack/A": [make_resource("A", "AWS::S3::Bucket", "a")],
            "arn:stack/C": [make_resource("C", "AWS::S3::Bucket", "c")],
        }
        client = FakeStackClient(resources=resources)
        assert resolve_nested_stacks(client, "root") == {"root", "A", "C"}

    def test_fetch_failure_raises_resource_fetch_error(self):
        client = FakeStackClient(resources=nested_graph())
        cause = ClassifiedError(ErrorKind.TRANSPORT_OR_UNKNOWN, "connection reset", "arn:stack/A")
        client.fail_next("arn:stack/A", cause)

        with pytest.raises(ResourceFetchError) as excinfo:
            resolve_nested_stacks(client, "root")

        assert excinfo.value.stack_name == "arn:stack/A"
        assert excinfo.value.__cause__ is cause

    def test_root_fetch_failure(self):
        client = FakeStackClient()
        client.fail_next("root", ClassifiedError(ErrorKind.STACK_NOT_FOUND, "missing", "root"))
        with pytest.raises(ResourceFetchError):
            resolve_nested_stacks(client, "root")


class TestBuildStackInfo:
    """Test building the watch set."""

    def test_without_nested(self):
        client = FakeStackClient(resources=nested_graph())
        info = build_stack_info(client, ["root", "other"], nested=False)

        assert info.names == {"root", "other"}
        assert info.original_names == {"root", "other"}
        assert client.resource_calls == []

    def test_with_nested(self):
        client = FakeStackClient(resources=nested_graph())
        info = build_stack_info(client, ["root"], nested=True)

        assert info.names == {"root", "A", "B"}
        assert info.original_names == {"root"}

    def test_multiple_roots(self):
        resources = nested_graph()
        resources["other"] = [make_resource("other", "AWS::S3::Bucket", "x")]
        client = FakeStackClient(resources=resources)

        info = build_stack_info(client, ["root", "other"], nested=True)

        assert info.names == {"root", "A", "B", "other"}
        assert info.original_names == {"root", "other"}
