"""
Tests for the boto3 backed CloudStackClient.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError, ReadTimeoutError

from cftail.client import Boto3StackClient, build_client, event_from_response
from cftail.errors import ClassifiedError, ErrorKind
from cftail.models import StackOutput


def client_error(code, message="boom"):
    return ClientError({"Error": {"Code": code, "Message": message}}, "DescribeStackEvents")


def raw_event(event_id, seconds, status="UPDATE_IN_PROGRESS", stack_name="root", **extra):
    raw = {
        "EventId": event_id,
        "StackName": stack_name,
        "StackId": f"arn:aws:cloudformation:us-east-1:123456789012:stack/{stack_name}/abc",
        "LogicalResourceId": extra.pop("logical", stack_name),
        "ResourceType": "AWS::CloudFormation::Stack",
        "Timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=seconds),
        "ResourceStatus": status,
    }
    raw.update(extra)
    return raw


class TestResponseConversion:

    def test_event_from_response(self):
        event = event_from_response(raw_event("e1", 10, ResourceStatusReason="User Initiated"))
        assert event.event_id == "e1"
        assert event.stack_name == "root"
        assert event.logical_resource_id == "root"
        assert event.resource_status_reason == "User Initiated"
        assert event.timestamp.tzinfo is not None

    def test_naive_timestamp_is_utc(self):
        raw = raw_event("e1", 0)
        raw["Timestamp"] = datetime(2024, 1, 1)
        event = event_from_response(raw)
        assert event.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestBoto3StackClient:
    """Test API calls, conversion and retry behaviour."""

    def test_list_stack_events_first_page(self):
        cfn = Mock()
        cfn.describe_stack_events.return_value = {
            "StackEvents": [raw_event("e2", 20), raw_event("e1", 10)],
            "NextToken": "page-2",
        }
        client = Boto3StackClient(cfn)

        page = client.list_stack_events("root")

        cfn.describe_stack_events.assert_called_once_with(StackName="root")
        assert [e.event_id for e in page.events] == ["e2", "e1"]
        assert page.next_token == "page-2"

    def test_list_stack_events_passes_token(self):
        cfn = Mock()
        cfn.describe_stack_events.return_value = {"StackEvents": []}
        client = Boto3StackClient(cfn)

        page = client.list_stack_events("root", "page-2")

        cfn.describe_stack_events.assert_called_once_with(StackName="root", NextToken="page-2")
        assert page.events == []
        assert page.next_token is None

    def test_list_stack_resources(self):
        cfn = Mock()
        cfn.describe_stack_resources.return_value = {
            "StackResources": [
                {"StackName": "root", "LogicalResourceId": "Child",
                 "PhysicalResourceId": "arn:child", "ResourceType": "AWS::CloudFormation::Stack"},
                {"StackName": "root", "LogicalResourceId": "Pending",
                 "PhysicalResourceId": "", "ResourceType": "AWS::CloudFormation::Stack"},
            ]
        }
        client = Boto3StackClient(cfn)

        resources = client.list_stack_resources("root")

        assert resources[0].physical_resource_id == "arn:child"
        assert resources[0].is_nested_stack
        assert resources[1].physical_resource_id is None

    def test_describe_stack_outputs(self):
        cfn = Mock()
        cfn.describe_stacks.return_value = {
            "Stacks": [{"StackName": "root", "Outputs": [
                {"OutputKey": "Url", "OutputValue": "https://example.com", "Description": "Site"},
                {"OutputKey": "Bucket", "OutputValue": "my-bucket"},
            ]}]
        }
        client = Boto3StackClient(cfn)

        outputs = client.describe_stack_outputs("root")

        assert outputs == [
            StackOutput("Url", "https://example.com", "Site"),
            StackOutput("Bucket", "my-bucket"),
        ]

    def test_describe_stack_outputs_without_outputs(self):
        cfn = Mock()
        cfn.describe_stacks.return_value = {"Stacks": [{"StackName": "root"}]}
        assert Boto3StackClient(cfn).describe_stack_outputs("root") == []

    def test_throttling_is_retried_with_backoff(self):
        cfn = Mock()
        cfn.describe_stack_events.side_effect = [
            client_error("Throttling"),
            client_error("Throttling"),
            {"StackEvents": [raw_event("e1", 1)]},
        ]
        sleep = Mock()
        client = Boto3StackClient(cfn, max_retries=3, sleep=sleep)

        page = client.list_stack_events("root")

        assert len(page.events) == 1
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2]

    def test_timeout_retries_exhausted(self):
        cfn = Mock()
        cfn.describe_stack_events.side_effect = ReadTimeoutError(endpoint_url="https://cloudformation")
        sleep = Mock()
        client = Boto3StackClient(cfn, max_retries=2, sleep=sleep)

        with pytest.raises(ClassifiedError) as excinfo:
            client.list_stack_events("root")

        assert excinfo.value.kind == ErrorKind.TIMEOUT
        assert cfn.describe_stack_events.call_count == 3
        assert sleep.call_count == 2

    def test_fatal_errors_not_retried(self):
        cfn = Mock()
        cfn.describe_stack_events.side_effect = client_error("ValidationError", "Stack with id root does not exist")
        sleep = Mock()
        client = Boto3StackClient(cfn, sleep=sleep)

        with pytest.raises(ClassifiedError) as excinfo:
            client.list_stack_events("root")

        assert excinfo.value.kind == ErrorKind.STACK_NOT_FOUND
        assert excinfo.value.stack_name == "root"
        assert isinstance(excinfo.value.__cause__, ClientError)
        sleep.assert_not_called()

    def test_expired_token_not_retried(self):
        cfn = Mock()
        cfn.describe_stack_resources.side_effect = client_error("ExpiredToken")
        client = Boto3StackClient(cfn, sleep=Mock())

        with pytest.raises(ClassifiedError) as excinfo:
            client.list_stack_resources("root")
        assert excinfo.value.kind == ErrorKind.CREDENTIALS_EXPIRED
        assert cfn.describe_stack_resources.call_count == 1


class TestBuildClient:

    @patch("cftail.client.boto3.session.Session")
    def test_build_client_uses_fresh_session(self, mock_session):
        session = mock_session.return_value
        session.region_name = "eu-west-1"

        client = build_client(region="eu-west-1", profile="dev", max_retries=5)

        mock_session.assert_called_once_with(profile_name="dev", region_name="eu-west-1")
        assert session.client.call_args.args[0] == "cloudformation"
        assert isinstance(client, Boto3StackClient)
        assert client.max_retries == 5
