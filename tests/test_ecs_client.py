"""Tests for the ECS/EC2 inventory client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoRegionError

from haproxy_ecs_discovery.config import DiscoveryConfig
from haproxy_ecs_discovery.discovery import ECSInventory
from haproxy_ecs_discovery.discovery.ecs_client import ECSInventoryClient
from haproxy_ecs_discovery.exceptions import ConfigError, TransportError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

DEFAULT_CONFIG = DiscoveryConfig(
    method="aws_ecs", aws_region="us-east-1", aws_ecs_cluster="prod", aws_ecs_family="web",
)


def _make_paginator_response(page_data: list[dict]):
    """Create a mock paginator that yields the given pages."""
    mock_paginator = MagicMock()
    mock_paginator.paginate.return_value = iter(page_data)
    return mock_paginator


def _client_error(operation="DescribeTasks"):
    return ClientError({"Error": {"Code": "AccessDeniedException", "Message": "denied"}}, operation)


def _make_client(ecs_mock=None, ec2_mock=None) -> ECSInventoryClient:
    client = ECSInventoryClient.__new__(ECSInventoryClient)
    client.region = "us-east-1"
    client._ecs = ecs_mock or MagicMock()
    client._ec2 = ec2_mock or MagicMock()
    return client


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestListTaskIds:
    def test_one_batch_per_page(self):
        ecs = MagicMock()
        ecs.get_paginator.return_value = _make_paginator_response([
            {"taskArns": ["t1", "t2"]},
            {"taskArns": []},
            {"taskArns": ["t3"]},
        ])
        client = _make_client(ecs)

        assert client.list_task_ids("prod", "web") == [["t1", "t2"], [], ["t3"]]
        ecs.get_paginator.assert_called_once_with("list_tasks")
        ecs.get_paginator.return_value.paginate.assert_called_once_with(cluster="prod", family="web")

    def test_error_raises_transport_error(self):
        ecs = MagicMock()
        paginator = MagicMock()
        paginator.paginate.side_effect = _client_error("ListTasks")
        ecs.get_paginator.return_value = paginator

        with pytest.raises(TransportError) as exc_info:
            _make_client(ecs).list_task_ids("prod", "web")
        assert exc_info.value.operation == "list_tasks"


class TestDescribeTasks:
    def test_parses_tasks(self):
        ecs = MagicMock()
        ecs.describe_tasks.return_value = {
            "tasks": [{
                "taskArn": "t1",
                "lastStatus": "RUNNING",
                "containerInstanceArn": "ci1",
                "containers": [{"networkBindings": [{"containerPort": 80, "hostPort": 32768}]}],
            }],
            "failures": [],
        }
        tasks = _make_client(ecs).describe_tasks("prod", ["t1"])

        ecs.describe_tasks.assert_called_once_with(cluster="prod", tasks=["t1"])
        assert tasks[0].task_id == "t1"
        assert tasks[0].host_bindings[0].host_port == 32768

    def test_empty_ids_skip_api_call(self):
        ecs = MagicMock()
        assert _make_client(ecs).describe_tasks("prod", []) == []
        ecs.describe_tasks.assert_not_called()

    def test_failures_are_logged(self, caplog):
        ecs = MagicMock()
        ecs.describe_tasks.return_value = {"tasks": [], "failures": [{"arn": "t9", "reason": "MISSING"}]}
        _make_client(ecs).describe_tasks("prod", ["t9"])
        assert "MISSING" in caplog.text

    def test_error_raises_transport_error(self):
        ecs = MagicMock()
        ecs.describe_tasks.side_effect = EndpointConnectionError(endpoint_url="https://ecs")
        with pytest.raises(TransportError, match="describe_tasks"):
            _make_client(ecs).describe_tasks("prod", ["t1"])


class TestDescribeContainerInstances:
    def test_deduplicates_arns(self):
        ecs = MagicMock()
        ecs.describe_container_instances.return_value = {
            "containerInstances": [{"containerInstanceArn": "ci1", "ec2InstanceId": "i-1"}],
        }
        result = _make_client(ecs).describe_container_instances("prod", ["ci1", "ci1"])

        ecs.describe_container_instances.assert_called_once_with(cluster="prod", containerInstances=["ci1"])
        assert result[0].compute_instance_id == "i-1"

    def test_empty_arns_skip_api_call(self):
        ecs = MagicMock()
        assert _make_client(ecs).describe_container_instances("prod", []) == []
        ecs.describe_container_instances.assert_not_called()


class TestDescribeComputeInstances:
    def test_flattens_reservations(self):
        ec2 = MagicMock()
        ec2.get_paginator.return_value = _make_paginator_response([{
            "Reservations": [
                {"Instances": [{"InstanceId": "i-1", "PrivateIpAddress": "10.0.0.1"}]},
                {"Instances": [{"InstanceId": "i-2", "PrivateIpAddress": "10.0.0.2"}]},
            ],
        }])
        result = _make_client(ec2_mock=ec2).describe_compute_instances(["i-1", "i-2"])

        assert set(result) == {"i-1", "i-2"}
        assert result["i-2"].private_ip == "10.0.0.2"
        ec2.get_paginator.return_value.paginate.assert_called_once_with(InstanceIds=["i-1", "i-2"])

    def test_empty_ids_skip_api_call(self):
        ec2 = MagicMock()
        assert _make_client(ec2_mock=ec2).describe_compute_instances([]) == {}
        ec2.get_paginator.assert_not_called()

    def test_error_raises_transport_error(self):
        ec2 = MagicMock()
        paginator = MagicMock()
        paginator.paginate.side_effect = _client_error("DescribeInstances")
        ec2.get_paginator.return_value = paginator
        with pytest.raises(TransportError, match="describe_instances"):
            _make_client(ec2_mock=ec2).describe_compute_instances(["i-1"])


class TestCredentials:
    """Tests for region and credential resolution."""

    def test_default_credential_chain(self, monkeypatch):
        monkeypatch.delenv("AWS_REGION", raising=False)
        with patch("boto3.Session") as MockSession:
            MockSession.return_value.client.return_value = MagicMock()
            ECSInventoryClient(DEFAULT_CONFIG)
            MockSession.assert_called_once_with(region_name="us-east-1")

    def test_explicit_keys(self):
        config = DiscoveryConfig(
            aws_region="eu-west-1", aws_access_key_id="AKIA", aws_secret_access_key="secret",
        )
        with patch("boto3.Session") as MockSession:
            MockSession.return_value.client.return_value = MagicMock()
            ECSInventoryClient(config)
            MockSession.assert_called_once_with(
                region_name="eu-west-1", aws_access_key_id="AKIA", aws_secret_access_key="secret",
            )

    def test_access_key_without_secret_ignored(self):
        config = DiscoveryConfig(aws_region="eu-west-1", aws_access_key_id="AKIA")
        with patch("boto3.Session") as MockSession:
            MockSession.return_value.client.return_value = MagicMock()
            ECSInventoryClient(config)
            MockSession.assert_called_once_with(region_name="eu-west-1")

    def test_region_falls_back_to_environment(self, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "ap-south-1")
        with patch("boto3.Session") as MockSession:
            MockSession.return_value.client.return_value = MagicMock()
            client = ECSInventoryClient(DiscoveryConfig())
            MockSession.assert_called_once_with(region_name="ap-south-1")
        assert client.region == "ap-south-1"

    def test_builds_ecs_and_ec2_clients(self):
        with patch("boto3.Session") as MockSession:
            session = MockSession.return_value
            ECSInventoryClient(DEFAULT_CONFIG)
            services = sorted(c.args[0] for c in session.client.call_args_list)
        assert services == ["ec2", "ecs"]

    def test_satisfies_inventory_protocol(self):
        assert isinstance(_make_client(), ECSInventory)

    def test_missing_region_is_a_config_error(self, monkeypatch):
        monkeypatch.delenv("AWS_REGION", raising=False)
        with patch("boto3.Session") as MockSession:
            MockSession.return_value.client.side_effect = NoRegionError()
            with pytest.raises(ConfigError, match="no AWS region for cluster prod"):
                ECSInventoryClient(DiscoveryConfig(aws_ecs_cluster="prod"))
