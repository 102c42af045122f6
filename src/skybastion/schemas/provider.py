from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ..core import AVAILABLE_STATUS


class Direction(str, Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


class InstanceStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    UNKNOWN = "Unknown"


class NetworkInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    network_id: str
    name: str
    subnet_id: str = Field(description="Subnet the bastion is placed in")


class SubnetInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    subnet_id: str
    zone_id: str
    cidr_range: str | None = None


class NetworkContext(BaseModel):
    """Network placement resolved once per pass from the network name."""

    model_config = ConfigDict(frozen=True)

    network_id: str
    subnet_id: str
    zone_id: str


class SecurityGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    network_id: str | None = None


class ComputeInstance(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    status: InstanceStatus
    private_ips: tuple[str, ...] = ()
    public_ip: str | None = None

    @property
    def private_ip(self) -> str | None:
        return self.private_ips[0] if self.private_ips else None


class SupportedResource(BaseModel):
    value: str = Field(description="Instance type id, e.g. e2-small")
    status: str = Field(description="Available or SoldOut")


class AvailableResource(BaseModel):
    type: str = "InstanceType"
    supported_resources: list[SupportedResource] = Field(default_factory=list)


class AvailableZone(BaseModel):
    zone_id: str
    available_resources: list[AvailableResource] = Field(default_factory=list)


class AvailabilityInfo(BaseModel):
    """Instance type availability for one core count in one zone."""

    available_zones: list[AvailableZone] = Field(default_factory=list)

    def available_type(self) -> str | None:
        """
        Returns the instance type id at zone -> resource -> supported resource,
        or None unless its status is Available.
        """
        if not self.available_zones:
            return None
        resources = self.available_zones[0].available_resources
        if not resources or not resources[0].supported_resources:
            return None
        supported = resources[0].supported_resources[0]
        if supported.status != AVAILABLE_STATUS:
            return None
        return supported.value


class SecurityRule(BaseModel):
    """
    One ingress or egress rule of a security group.

    Rules compare by their semantic key, never by ``priority`` or ``handle``:
    those are assigned by the provider.
    """

    model_config = ConfigDict(frozen=True)

    direction: Direction
    description: str | None = None
    ip_protocol: str
    port_range: str = Field(description="'22/22' style, '-1/-1' for all ports")
    source_cidr_ip: str | None = None
    ipv6_source_cidr_ip: str | None = None
    dest_cidr_ip: str | None = None
    dest_group_id: str | None = None
    policy: Literal["accept", "drop"] = "accept"
    priority: int = 1
    handle: str | None = Field(
        default=None, description="Provider reference used to revoke the rule"
    )

    def semantic_key(self) -> tuple[str | None, ...]:
        key: tuple[str | None, ...] = (
            self.direction.value,
            self.description,
            self.ip_protocol,
            self.port_range,
            self.source_cidr_ip,
            self.ipv6_source_cidr_ip,
        )
        if self.direction is Direction.EGRESS:
            key += (self.dest_cidr_ip, self.dest_group_id, self.policy)
        return key
