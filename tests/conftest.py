import pytest

from skybastion.schemas.bastion import (
    BastionOptions,
    ClusterMetadata,
    MachineType,
    ReconcileRequest,
)
from skybastion.schemas.provider import (
    AvailabilityInfo,
    ComputeInstance,
    InstanceStatus,
    NetworkInfo,
    SecurityGroup,
    SecurityRule,
    SubnetInfo,
)


class FakeProvider:
    """In-memory cloud that records every mutating call."""

    def __init__(self) -> None:
        self.groups: dict[str, SecurityGroup] = {}
        self.instances: dict[str, ComputeInstance] = {}
        self.rules: dict[str, list[SecurityRule]] = {}
        self.availability: dict[int, AvailabilityInfo] = {}
        self.calls: list[tuple[str, ...]] = []
        self.next_status = InstanceStatus.PENDING
        self.next_private_ip: str | None = "10.0.0.5"
        self.public_ip: str | None = None
        self.fail_on: str | None = None
        self._rule_seq = 0

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise RuntimeError(f"{operation} exploded")

    def lookup_network(self, name):
        return NetworkInfo(network_id=f"net-{name}", name=name, subnet_id="subnet-1")

    def lookup_subnet(self, subnet_id):
        return SubnetInfo(subnet_id=subnet_id, zone_id="zone-a")

    def list_instance_type_availability(self, cores, zone_id):
        self.calls.append(("list_instance_type_availability", str(cores)))
        return self.availability.get(cores, AvailabilityInfo())

    def lookup_security_group(self, name):
        self._maybe_fail("lookup_security_group")
        return self.groups.get(name)

    def create_security_group(self, network_id, name):
        self._maybe_fail("create_security_group")
        self.calls.append(("create_security_group", name))
        group = SecurityGroup(id=f"sg-{name}", name=name, network_id=network_id)
        self.groups[name] = group
        return group

    def lookup_instance(self, name):
        return self.instances.get(name)

    def create_instance(
        self, name, security_group_id, image_id, subnet_id, zone_id, type_id, user_data
    ):
        self.calls.append(("create_instance", name, type_id))
        instance = ComputeInstance(
            id=f"i-{len(self.instances) + 1}",
            name=name,
            status=self.next_status,
        )
        self.instances[name] = instance
        return instance

    def set_running(self, name: str) -> None:
        instance = self.instances[name]
        ips = (self.next_private_ip,) if self.next_private_ip else ()
        self.instances[name] = instance.model_copy(
            update={"status": InstanceStatus.RUNNING, "private_ips": ips}
        )

    def describe_rules(self, security_group_id, direction):
        return [
            r for r in self.rules.get(security_group_id, []) if r.direction == direction
        ]

    def _add(self, security_group_id, rule):
        self._rule_seq += 1
        stored = rule.model_copy(update={"handle": f"rule-{self._rule_seq}"})
        self.rules.setdefault(security_group_id, []).append(stored)

    def _remove(self, security_group_id, rule):
        self.rules[security_group_id] = [
            r for r in self.rules.get(security_group_id, []) if r.handle != rule.handle
        ]

    def create_ingress_rule(self, security_group_id, rule):
        self._maybe_fail("create_ingress_rule")
        self.calls.append(("create_ingress_rule", rule.description))
        self._add(security_group_id, rule)

    def revoke_ingress_rule(self, security_group_id, rule):
        self.calls.append(("revoke_ingress_rule", rule.description))
        self._remove(security_group_id, rule)

    def create_egress_rule(self, security_group_id, rule):
        self.calls.append(("create_egress_rule", rule.description))
        self._add(security_group_id, rule)

    def revoke_egress_rule(self, security_group_id, rule):
        self.calls.append(("revoke_egress_rule", rule.description))
        self._remove(security_group_id, rule)

    def allocate_public_address(self, instance_id):
        self.calls.append(("allocate_public_address", instance_id))
        return self.public_ip

    def created(self, operation: str) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] == operation]


class FakeStatusWriter:
    def __init__(self) -> None:
        self.patches: list[tuple[str, dict]] = []

    def patch_status(self, name, patch):
        self.patches.append((name, patch))


@pytest.fixture
def provider():
    fake = FakeProvider()
    fake.groups["shoot-sg"] = SecurityGroup(id="sg-shoot", name="shoot-sg")
    return fake


@pytest.fixture
def status_writer():
    return FakeStatusWriter()


@pytest.fixture
def bastion_request():
    return ReconcileRequest(
        bastion_name="bastion-1",
        options=BastionOptions(
            region="region-1",
            instance_name="bastion-1",
            security_group_name="bastion-1",
            workload_security_group_name="shoot-sg",
            network_name="shoot-vpc",
            image_id="img-1",
            user_data="#!/bin/sh\necho hi",
        ),
        cluster=ClusterMetadata(
            machine_types=[MachineType(name="m.small"), MachineType(name="m.large")]
        ),
        ingress=["203.0.113.0/24"],
    )
