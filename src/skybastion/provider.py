from typing import Protocol

from .schemas.provider import (
    AvailabilityInfo,
    ComputeInstance,
    Direction,
    NetworkInfo,
    SecurityGroup,
    SecurityRule,
    SubnetInfo,
)


class BastionProvider(Protocol):
    """
    Cloud operations a reconcile pass needs.

    Implementations are handed in already authenticated and bound to a region.
    Lookups return None when nothing matches the name. The reconciler assumes
    that concurrent creates with the same name are deduplicated by the cloud,
    if at all; it does not guard against that race itself.
    """

    def lookup_network(self, name: str) -> NetworkInfo: ...

    def lookup_subnet(self, subnet_id: str) -> SubnetInfo: ...

    def list_instance_type_availability(
        self, cores: int, zone_id: str
    ) -> AvailabilityInfo | None: ...

    def lookup_security_group(self, name: str) -> SecurityGroup | None: ...

    def create_security_group(self, network_id: str, name: str) -> SecurityGroup: ...

    def lookup_instance(self, name: str) -> ComputeInstance | None: ...

    def create_instance(
        self,
        name: str,
        security_group_id: str,
        image_id: str,
        subnet_id: str,
        zone_id: str,
        instance_type_id: str,
        user_data: str,
    ) -> ComputeInstance: ...

    def describe_rules(
        self, security_group_id: str, direction: Direction
    ) -> list[SecurityRule]: ...

    def create_ingress_rule(self, security_group_id: str, rule: SecurityRule) -> None: ...

    def revoke_ingress_rule(self, security_group_id: str, rule: SecurityRule) -> None: ...

    def create_egress_rule(self, security_group_id: str, rule: SecurityRule) -> None: ...

    def revoke_egress_rule(self, security_group_id: str, rule: SecurityRule) -> None: ...

    def allocate_public_address(self, instance_id: str) -> str | None: ...
