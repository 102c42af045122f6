"""
Bastion provider on Google Compute Engine.

GCE has no security groups, so a group is modelled as a network tag:
- the group itself is an anchor firewall named after the tag (ingress, deny
  all, lowest priority, which GCE implies anyway); its id is the group id.
- every rule is one firewall targeting the tag. The rule is serialized into
  the firewall description so it reads back by value.
- egress rules towards another group resolve to the subnet ranges of that
  group's network.
"""

import hashlib
from typing import Any

from google.api_core.exceptions import NotFound
from google.cloud import compute_v1
from pydantic import ValidationError
from tenacity import retry

from ..clients import (
    get_firewalls_client,
    get_instances_client,
    get_machine_types_client,
    get_networks_client,
    get_subnetworks_client,
)
from ..core import ALL_PORTS, ANY_IPV4_CIDR, AVAILABLE_STATUS, RETRY_CONFIG
from ..logger import logger
from ..schemas.provider import (
    AvailabilityInfo,
    AvailableResource,
    AvailableZone,
    ComputeInstance,
    Direction,
    InstanceStatus,
    NetworkInfo,
    SecurityGroup,
    SecurityRule,
    SubnetInfo,
    SupportedResource,
)

ANCHOR_PRIORITY = 65535
OPERATION_TIMEOUT = 300
BOOT_DISK_SIZE_GB = 10
STARTUP_SCRIPT_KEY = "startup-script"

_STATUS_MAP = {
    "PROVISIONING": InstanceStatus.PENDING,
    "STAGING": InstanceStatus.PENDING,
    "REPAIRING": InstanceStatus.PENDING,
    "RUNNING": InstanceStatus.RUNNING,
    "STOPPING": InstanceStatus.STOPPING,
    "SUSPENDING": InstanceStatus.STOPPING,
    "SUSPENDED": InstanceStatus.STOPPED,
    "TERMINATED": InstanceStatus.STOPPED,
}


def _short_name(url: str) -> str:
    return url.split("/")[-1] if url else url


def _ports(port_range: str) -> list[str]:
    """'22/22' -> ['22'], '1/1024' -> ['1-1024'], '-1/-1' -> []"""
    if port_range == ALL_PORTS:
        return []
    start, _, end = port_range.partition("/")
    end = end or start
    return [start] if start == end else [f"{start}-{end}"]


def _port_range(ports: list[str]) -> str:
    if not ports:
        return ALL_PORTS
    start, _, end = ports[0].partition("-")
    return f"{start}/{end or start}"


def _rule_firewall_name(tag: str, rule: SecurityRule) -> str:
    digest = hashlib.sha1(repr(rule.semantic_key()).encode()).hexdigest()[:10]
    return f"{tag[:48]}-{rule.direction.value[0]}-{digest}"


def _to_instance(instance: Any) -> ComputeInstance:
    private_ips: tuple[str, ...] = ()
    public_ip = None
    if instance.network_interfaces:
        nic = instance.network_interfaces[0]
        if nic.network_i_p:
            private_ips = (nic.network_i_p,)
        if nic.access_configs:
            public_ip = nic.access_configs[0].nat_i_p or None

    return ComputeInstance(
        id=str(instance.id),
        name=instance.name,
        status=_STATUS_MAP.get(str(instance.status), InstanceStatus.UNKNOWN),
        private_ips=private_ips,
        public_ip=public_ip,
    )


def _rule_from_firewall(firewall: Any) -> SecurityRule:
    """Reads a rule back from its firewall, falling back to its raw fields."""
    extra = {"handle": firewall.name, "priority": firewall.priority}
    try:
        rule = SecurityRule.model_validate_json(firewall.description)
        return rule.model_copy(update=extra)
    except ValidationError:
        logger.debug(f"Firewall {firewall.name} has a foreign description")

    direction = Direction(str(firewall.direction).lower())
    entries = firewall.allowed or firewall.denied or []
    protocol = str(entries[0].I_p_protocol) if entries else "all"
    ports = list(entries[0].ports) if entries else []
    sources = list(firewall.source_ranges) if firewall.source_ranges else []
    destinations = (
        list(firewall.destination_ranges) if firewall.destination_ranges else []
    )
    ipv4 = [s for s in sources if ":" not in s]
    ipv6 = [s for s in sources if ":" in s]

    return SecurityRule(
        direction=direction,
        description=firewall.description or None,
        ip_protocol=protocol,
        port_range=_port_range(ports),
        source_cidr_ip=ipv4[0] if ipv4 else None,
        ipv6_source_cidr_ip=ipv6[0] if ipv6 else None,
        dest_cidr_ip=destinations[0] if destinations else None,
        policy="accept" if firewall.allowed else "drop",
        **extra,
    )


class GCPProvider:
    """BastionProvider bound to one project and zone."""

    def __init__(self, project_id: str, zone: str) -> None:
        self.project_id = project_id
        self.zone = zone
        self.region = zone.rsplit("-", 1)[0]

    # Network

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def lookup_network(self, name: str) -> NetworkInfo:
        network = get_networks_client().get(project=self.project_id, network=name)

        subnet_id = next(
            (
                url
                for url in network.subnetworks
                if f"/regions/{self.region}/" in url
            ),
            None,
        )
        if subnet_id is None:
            raise ValueError(f"network {name} has no subnetwork in {self.region}")

        return NetworkInfo(
            network_id=network.self_link, name=network.name, subnet_id=subnet_id
        )

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def lookup_subnet(self, subnet_id: str) -> SubnetInfo:
        region = subnet_id.split("/regions/")[-1].split("/")[0]
        subnet = get_subnetworks_client().get(
            project=self.project_id,
            region=region,
            subnetwork=_short_name(subnet_id),
        )
        if _short_name(subnet.region) != self.region:
            raise ValueError(f"subnet {subnet.name} is not in region of {self.zone}")

        return SubnetInfo(
            subnet_id=subnet.self_link,
            zone_id=self.zone,
            cidr_range=subnet.ip_cidr_range,
        )

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def list_instance_type_availability(
        self, cores: int, zone_id: str
    ) -> AvailabilityInfo:
        request = compute_v1.ListMachineTypesRequest(
            project=self.project_id, zone=zone_id, filter=f"guestCpus = {cores}"
        )
        machine_types = sorted(
            get_machine_types_client().list(request=request),
            key=lambda mt: mt.memory_mb,
        )

        supported = []
        for mt in machine_types:
            deprecated = bool(mt.deprecated and mt.deprecated.state)
            supported.append(
                SupportedResource(
                    value=mt.name,
                    status="Deprecated" if deprecated else AVAILABLE_STATUS,
                )
            )
        # available types first, smallest first
        supported.sort(key=lambda s: s.status != AVAILABLE_STATUS)

        if not supported:
            return AvailabilityInfo()
        return AvailabilityInfo(
            available_zones=[
                AvailableZone(
                    zone_id=zone_id,
                    available_resources=[
                        AvailableResource(supported_resources=supported)
                    ],
                )
            ]
        )

    # Security groups

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _list_firewalls(self) -> list[Any]:
        return list(get_firewalls_client().list(project=self.project_id))

    def _group_anchor(self, security_group_id: str) -> Any:
        for firewall in self._list_firewalls():
            if str(firewall.id) == security_group_id:
                return firewall
        raise ValueError(f"security group {security_group_id} not found")

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def lookup_security_group(self, name: str) -> SecurityGroup | None:
        try:
            firewall = get_firewalls_client().get(
                project=self.project_id, firewall=name
            )
        except NotFound:
            return None
        return SecurityGroup(
            id=str(firewall.id), name=firewall.name, network_id=firewall.network
        )

    def create_security_group(self, network_id: str, name: str) -> SecurityGroup:
        anchor = compute_v1.Firewall(
            name=name,
            network=network_id,
            direction="INGRESS",
            priority=ANCHOR_PRIORITY,
            description=f"Bastion security group {name}",
            denied=[compute_v1.Denied(I_p_protocol="all")],
            source_ranges=[ANY_IPV4_CIDR],
            target_tags=[name],
        )
        operation = get_firewalls_client().insert(
            project=self.project_id, firewall_resource=anchor
        )
        operation.result(timeout=OPERATION_TIMEOUT)

        group = self.lookup_security_group(name)
        if group is None:
            raise ValueError(f"security group {name} missing after creation")
        return group

    def describe_rules(
        self, security_group_id: str, direction: Direction
    ) -> list[SecurityRule]:
        firewalls = self._list_firewalls()
        anchor = next(
            (fw for fw in firewalls if str(fw.id) == security_group_id), None
        )
        if anchor is None:
            raise ValueError(f"security group {security_group_id} not found")

        rules = []
        for fw in firewalls:
            if fw.name == anchor.name or anchor.name not in (fw.target_tags or []):
                continue
            if str(fw.direction).lower() != direction.value:
                continue
            rules.append(_rule_from_firewall(fw))
        return rules

    def _group_ranges(self, security_group_id: str) -> list[str]:
        """Subnet ranges of the network the given group lives in."""
        anchor = self._group_anchor(security_group_id)
        request = compute_v1.ListSubnetworksRequest(
            project=self.project_id,
            region=self.region,
            filter=f'network = "{anchor.network}"',
        )
        subnets = get_subnetworks_client().list(request=request)
        ranges = [sn.ip_cidr_range for sn in subnets]
        if not ranges:
            raise ValueError(f"security group {anchor.name} has no subnet ranges")
        return ranges

    def _insert_rule(self, security_group_id: str, rule: SecurityRule) -> None:
        anchor = self._group_anchor(security_group_id)
        tag = anchor.name
        ports = _ports(rule.port_range)

        firewall = compute_v1.Firewall(
            name=_rule_firewall_name(tag, rule),
            network=anchor.network,
            direction=rule.direction.value.upper(),
            priority=rule.priority,
            description=rule.model_dump_json(exclude={"handle", "priority"}),
            target_tags=[tag],
        )
        if rule.policy == "accept":
            firewall.allowed = [
                compute_v1.Allowed(I_p_protocol=rule.ip_protocol, ports=ports)
            ]
        else:
            firewall.denied = [
                compute_v1.Denied(I_p_protocol=rule.ip_protocol, ports=ports)
            ]

        if rule.direction is Direction.INGRESS:
            firewall.source_ranges = [
                cidr
                for cidr in (rule.source_cidr_ip, rule.ipv6_source_cidr_ip)
                if cidr
            ]
        elif rule.dest_group_id:
            firewall.destination_ranges = self._group_ranges(rule.dest_group_id)
        elif rule.dest_cidr_ip:
            firewall.destination_ranges = [rule.dest_cidr_ip]

        operation = get_firewalls_client().insert(
            project=self.project_id, firewall_resource=firewall
        )
        operation.result(timeout=OPERATION_TIMEOUT)

    def _delete_rule(self, rule: SecurityRule) -> None:
        if not rule.handle:
            raise ValueError(f"rule {rule.description!r} has no firewall handle")
        operation = get_firewalls_client().delete(
            project=self.project_id, firewall=rule.handle
        )
        operation.result(timeout=OPERATION_TIMEOUT)

    def create_ingress_rule(self, security_group_id: str, rule: SecurityRule) -> None:
        self._insert_rule(security_group_id, rule)

    def revoke_ingress_rule(self, security_group_id: str, rule: SecurityRule) -> None:
        self._delete_rule(rule)

    def create_egress_rule(self, security_group_id: str, rule: SecurityRule) -> None:
        self._insert_rule(security_group_id, rule)

    def revoke_egress_rule(self, security_group_id: str, rule: SecurityRule) -> None:
        self._delete_rule(rule)

    # Instances

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _find_instance(self, filter_expr: str) -> Any | None:
        request = compute_v1.ListInstancesRequest(
            project=self.project_id, zone=self.zone, filter=filter_expr
        )
        for instance in get_instances_client().list(request=request):
            return instance
        return None

    def lookup_instance(self, name: str) -> ComputeInstance | None:
        instance = self._find_instance(f'name = "{name}"')
        return _to_instance(instance) if instance is not None else None

    def create_instance(
        self,
        name: str,
        security_group_id: str,
        image_id: str,
        subnet_id: str,
        zone_id: str,
        instance_type_id: str,
        user_data: str,
    ) -> ComputeInstance:
        tag = self._group_anchor(security_group_id).name
        instance = compute_v1.Instance(
            name=name,
            machine_type=f"zones/{zone_id}/machineTypes/{instance_type_id}",
            disks=[
                compute_v1.AttachedDisk(
                    boot=True,
                    auto_delete=True,
                    initialize_params=compute_v1.AttachedDiskInitializeParams(
                        source_image=image_id,
                        disk_size_gb=BOOT_DISK_SIZE_GB,
                    ),
                )
            ],
            network_interfaces=[compute_v1.NetworkInterface(subnetwork=subnet_id)],
            tags=compute_v1.Tags(items=[tag]),
            metadata=compute_v1.Metadata(
                items=[compute_v1.Items(key=STARTUP_SCRIPT_KEY, value=user_data)]
            ),
        )
        operation = get_instances_client().insert(
            project=self.project_id, zone=zone_id, instance_resource=instance
        )
        operation.result(timeout=OPERATION_TIMEOUT)

        created = self.lookup_instance(name)
        if created is None:
            raise ValueError(f"instance {name} missing after creation")
        return created

    def allocate_public_address(self, instance_id: str) -> str | None:
        """
        Attaches an ephemeral external IP unless one is attached already.
        Returns the current external IP, None while it is not assigned yet.
        """
        instance = self._find_instance(f"id = {instance_id}")
        if instance is None:
            raise ValueError(f"instance {instance_id} not found")

        current = _to_instance(instance)
        nic = instance.network_interfaces[0]
        if nic.access_configs:
            return current.public_ip

        logger.info(f"Attaching external IP to {instance.name}")
        operation = get_instances_client().add_access_config(
            project=self.project_id,
            zone=self.zone,
            instance=instance.name,
            network_interface=nic.name,
            access_config_resource=compute_v1.AccessConfig(
                name="External NAT", type_="ONE_TO_ONE_NAT"
            ),
        )
        operation.result(timeout=OPERATION_TIMEOUT)

        refreshed = self.lookup_instance(instance.name)
        return refreshed.public_ip if refreshed is not None else None
