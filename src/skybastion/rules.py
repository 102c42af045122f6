from collections.abc import Iterable
from ipaddress import IPv4Network, IPv6Network, ip_network

from .core import (
    ALL_PORTS,
    ALL_PROTOCOLS,
    ANY_IPV4_CIDR,
    DEFAULT_INGRESS_CIDR,
    EGRESS_DENY_DESCRIPTION,
    EGRESS_SSH_DESCRIPTION,
    INGRESS_SSH_DESCRIPTION,
    SSH_PORT_RANGE,
    SSH_PROTOCOL,
)
from .schemas.provider import Direction, SecurityRule


def rules_symmetric_difference(
    wanted: Iterable[SecurityRule], current: Iterable[SecurityRule]
) -> tuple[list[SecurityRule], list[SecurityRule]]:
    """
    Returns (to_add, to_delete) so that current - to_delete + to_add equals
    wanted, comparing rules by value.

    A rule whose description was changed out-of-band counts as a different
    rule and is revoked and re-created.
    """
    wanted = list(wanted)
    current = list(current)
    wanted_keys = {rule.semantic_key() for rule in wanted}
    current_keys = {rule.semantic_key() for rule in current}

    to_delete = [rule for rule in current if rule.semantic_key() not in wanted_keys]

    to_add: list[SecurityRule] = []
    seen: set[tuple[str | None, ...]] = set()
    for rule in wanted:
        key = rule.semantic_key()
        if key in current_keys or key in seen:
            continue
        seen.add(key)
        to_add.append(rule)

    return to_add, to_delete


def ingress_allow_ssh(cidr: IPv4Network | IPv6Network) -> SecurityRule:
    if cidr.version == 6:
        return SecurityRule(
            direction=Direction.INGRESS,
            description=INGRESS_SSH_DESCRIPTION,
            ip_protocol=SSH_PROTOCOL,
            port_range=SSH_PORT_RANGE,
            ipv6_source_cidr_ip=str(cidr),
        )
    return SecurityRule(
        direction=Direction.INGRESS,
        description=INGRESS_SSH_DESCRIPTION,
        ip_protocol=SSH_PROTOCOL,
        port_range=SSH_PORT_RANGE,
        source_cidr_ip=str(cidr),
    )


def wanted_ingress_rules(
    ingress: Iterable[IPv4Network | IPv6Network],
) -> list[SecurityRule]:
    """One SSH allow rule per allowlisted CIDR, any IPv4 source if none given."""
    cidrs = list(ingress) or [ip_network(DEFAULT_INGRESS_CIDR)]
    return [ingress_allow_ssh(cidr) for cidr in cidrs]


def egress_allow_ssh_to_workload(
    private_ip: str, workload_security_group_id: str
) -> SecurityRule:
    return SecurityRule(
        direction=Direction.EGRESS,
        description=EGRESS_SSH_DESCRIPTION,
        ip_protocol=SSH_PROTOCOL,
        port_range=SSH_PORT_RANGE,
        source_cidr_ip=private_ip,
        dest_group_id=workload_security_group_id,
        policy="accept",
        priority=1,
    )


def egress_deny_all() -> SecurityRule:
    return SecurityRule(
        direction=Direction.EGRESS,
        description=EGRESS_DENY_DESCRIPTION,
        ip_protocol=ALL_PROTOCOLS,
        port_range=ALL_PORTS,
        dest_cidr_ip=ANY_IPV4_CIDR,
        policy="drop",
        priority=2,
    )


def wanted_egress_rules(
    private_ip: str, workload_security_group_id: str
) -> list[SecurityRule]:
    return [
        egress_allow_ssh_to_workload(private_ip, workload_security_group_id),
        egress_deny_all(),
    ]
