"""Tests for the create and delete orchestration."""

import base64
from pathlib import Path
from typing import Any

import pytest

from ec2_stack.core.deployments.aws_ec2.deploy import create_stack, destroy_stack
from ec2_stack.core.errors import (
    NetworkProvisioningError,
    ProvisioningError,
    ResourceLookupError,
)
from ec2_stack.core.models import StackConfig
from ec2_stack.core.normalizer import normalize_config
from ec2_stack.core.settings import StackDefaults
from tests.fakes import FakeSession, client_error, noop_reporter

USERS = [{"username": "alice", "github_username": "alice-gh"}]


class Snapshots:
    """Persist callback that keeps a copy of every saved config."""

    def __init__(self, session: FakeSession) -> None:
        self.session = session
        self.saved: list[dict[str, Any]] = []
        self.calls_at_save: list[int] = []

    def __call__(self, config: StackConfig) -> None:
        self.saved.append(config.model_dump(mode="json"))
        self.calls_at_save.append(len(self.session.calls))


def _config(raw: dict[str, Any], defaults: StackDefaults) -> StackConfig:
    return normalize_config(raw, defaults)


def test_dns_only_stack_never_touches_compute(
    session: FakeSession, defaults: StackDefaults
) -> None:
    config = _config(
        {
            "dns": {
                "target_ip": "203.0.113.10",
                "hostname": "app",
                "domain": "example.com",
                "is_apex_domain": True,
                "cname_aliases": ["www"],
            }
        },
        defaults,
    )

    create_stack(config, "web", defaults, Snapshots(session), noop_reporter, session=session)

    assert session.services() <= {"sts", "route53"}
    assert config.dns is not None
    assert [(r.name, r.type, r.value) for r in config.dns.records] == [
        ("app.example.com", "A", "203.0.113.10"),
        ("www.example.com", "CNAME", "app.example.com"),
        ("example.com", "A", "203.0.113.10"),
    ]
    assert config.dns.zone_id == "Z123"
    assert config.dns.fqdn == "app.example.com"


def test_full_stack_records_outputs(session: FakeSession, defaults: StackDefaults) -> None:
    session.ec2.add_vpc("vpc-default", default=True)
    session.ec2.add_subnet("subnet-public", "vpc-default", public=True)
    config = _config(
        {"vm": {"users": USERS}, "dns": {"hostname": "app", "domain": "example.com"}}, defaults
    )
    persist = Snapshots(session)

    create_stack(config, "web", defaults, persist, noop_reporter, session=session)

    vm = config.vm
    assert vm is not None
    assert vm.ami_id == "ami-0123456789"
    assert vm.stack_name == "web"
    assert vm.instance_id == "i-0abc"
    assert vm.public_ip == "198.51.100.7"
    assert vm.security_group == "sg-0abc"
    assert vm.ssh_command == "ssh alice@app.example.com"
    assert vm.network is not None
    assert (vm.network.vpc_id, vm.network.created_vpc) == ("vpc-default", False)
    assert config.dns is not None
    assert [(r.name, r.value) for r in config.dns.records] == [("app.example.com", "198.51.100.7")]

    stack_call = next(call for call in session.calls if call.operation == "create_stack")
    parameters = {
        item["ParameterKey"]: item["ParameterValue"] for item in stack_call.kwargs["Parameters"]
    }
    assert parameters["SubnetId"] == "subnet-public"
    assert parameters["Users"] == "5:alice8:alice-gh"
    assert parameters["ImageId"] == "ami-0123456789"


def test_config_is_persisted_after_each_step(
    session: FakeSession, defaults: StackDefaults
) -> None:
    config = _config(
        {"vm": {"users": USERS}, "dns": {"hostname": "app", "domain": "example.com"}}, defaults
    )
    persist = Snapshots(session)

    create_stack(config, "web", defaults, persist, noop_reporter, session=session)

    network_saved, compute_saved, dns_saved, final = persist.saved
    assert network_saved["vm"]["network"]["created_vpc"] is True
    assert network_saved["vm"]["stack_id"] is None
    assert compute_saved["vm"]["instance_id"] == "i-0abc"
    assert compute_saved["dns"]["records"] == []
    assert len(dns_saved["dns"]["records"]) == 1
    assert final["vm"]["ssh_command"] == "ssh alice@app.example.com"


def test_generated_hostname_is_persisted_before_any_call(
    session: FakeSession, defaults: StackDefaults
) -> None:
    config = _config({"dns": {"domain": "example.com", "target_ip": "203.0.113.10"}}, defaults)
    persist = Snapshots(session)

    create_stack(config, "web", defaults, persist, noop_reporter, session=session)

    first = persist.saved[0]
    assert len(first["dns"]["hostname"]) == 8
    assert persist.calls_at_save[0] == 0
    assert config.dns is not None
    assert config.dns.records[0].name == f"{first['dns']['hostname']}.example.com"


def test_network_failure_persists_partial_state(
    session: FakeSession, defaults: StackDefaults
) -> None:
    session.ec2.errors["create_route_table"] = client_error("RouteTableLimitExceeded")
    config = _config({"vm": {"users": USERS}}, defaults)
    persist = Snapshots(session)

    with pytest.raises(NetworkProvisioningError):
        create_stack(config, "web", defaults, persist, noop_reporter, session=session)

    network = persist.saved[-1]["vm"]["network"]
    assert network["created_vpc"] is True
    assert network["created_subnet"] is True
    assert network["internet_gateway_id"] == "igw-new"
    assert network["route_table_id"] is None
    assert "cloudformation" not in session.services()


def test_missing_zone_fails_before_compute(session: FakeSession, defaults: StackDefaults) -> None:
    session.route53.zones = []
    config = _config(
        {"vm": {"users": USERS}, "dns": {"hostname": "app", "domain": "example.com"}}, defaults
    )

    with pytest.raises(ResourceLookupError):
        create_stack(config, "web", defaults, Snapshots(session), noop_reporter, session=session)

    assert not {"cloudformation", "ec2"} & session.services()


def test_second_create_reuses_persisted_network(
    session: FakeSession, defaults: StackDefaults
) -> None:
    config = _config({"vm": {"users": USERS}}, defaults)
    create_stack(config, "web", defaults, Snapshots(session), noop_reporter, session=session)
    session.calls.clear()

    create_stack(config, "web", defaults, Snapshots(session), noop_reporter, session=session)

    assert session.ec2.operations() == []
    assert config.vm is not None
    assert config.vm.network is not None
    assert config.vm.network.created_vpc is True
    assert config.vm.ssh_command == "ssh alice@198.51.100.7"


def test_cloud_init_template_is_rendered_into_user_data(
    session: FakeSession, defaults: StackDefaults, tmp_path: Path
) -> None:
    (tmp_path / "init.yaml").write_text("hostname: {{ fqdn }}\n", encoding="utf-8")
    config = _config(
        {
            "vm": {"users": USERS, "cloud_init_file": "init.yaml"},
            "dns": {"hostname": "app", "domain": "example.com"},
        },
        defaults,
    )

    create_stack(
        config,
        "web",
        defaults,
        Snapshots(session),
        noop_reporter,
        session=session,
        config_dir=tmp_path,
    )

    stack_call = next(call for call in session.calls if call.operation == "create_stack")
    parameters = {
        item["ParameterKey"]: item["ParameterValue"] for item in stack_call.kwargs["Parameters"]
    }
    user_data = base64.b64decode(parameters["UserData"]).decode("utf-8")
    assert "text/cloud-config" in user_data


def test_destroy_removes_everything_created(session: FakeSession, defaults: StackDefaults) -> None:
    config = _config(
        {"vm": {"users": USERS}, "dns": {"hostname": "app", "domain": "example.com"}}, defaults
    )
    create_stack(config, "web", defaults, Snapshots(session), noop_reporter, session=session)
    persist = Snapshots(session)

    report = destroy_stack(config, "web", defaults, persist, noop_reporter, session=session)

    assert report.clean
    assert session.route53.record_sets == {}
    assert session.cloudformation.stacks == {}
    assert "delete_vpc" in session.ec2.operations()
    assert not config.has_resources()
    assert persist.saved[-1]["vm"]["users"] == USERS
    assert persist.saved[-1]["dns"]["hostname"] == "app"


def test_destroy_keeps_discovered_network(session: FakeSession, defaults: StackDefaults) -> None:
    session.ec2.add_vpc("vpc-default", default=True)
    session.ec2.add_subnet("subnet-public", "vpc-default", public=True)
    config = _config({"vm": {"users": USERS}}, defaults)
    create_stack(config, "web", defaults, Snapshots(session), noop_reporter, session=session)
    session.calls.clear()

    destroy_stack(config, "web", defaults, Snapshots(session), noop_reporter, session=session)

    assert session.ec2.operations() == []


def test_failed_rerun_keeps_records_from_first_run(
    session: FakeSession, defaults: StackDefaults
) -> None:
    raw = {"dns": {"target_ip": "203.0.113.10", "hostname": "app", "domain": "example.com"}}
    config = _config(raw, defaults)
    create_stack(config, "web", defaults, Snapshots(session), noop_reporter, session=session)
    assert config.dns is not None
    config.dns.cname_aliases = ["www"]
    session.route53.failing_names = {"www.example.com."}

    with pytest.raises(ProvisioningError):
        create_stack(config, "web", defaults, Snapshots(session), noop_reporter, session=session)

    assert session.route53.changes("DELETE") == []
    assert list(session.route53.record_sets) == [("app.example.com.", "A")]
    assert [record.name for record in config.dns.records] == ["app.example.com"]
