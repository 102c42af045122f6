"""
One reconcile pass of a bastion host.

The pass walks network -> instance type -> security group -> instance ->
instance readiness -> security group rules -> public address -> endpoints ->
status. Every step re-reads the cloud, so a pass aborted half-way resumes
where it stopped the next time it runs. Passes for the same bastion must not
run concurrently; the caller's scheduler guarantees that.
"""

from collections.abc import Callable

from .endpoints import BastionEndpoints
from .ensure import ensure_compute_instance, ensure_security_group
from .errors import ConfigurationError, ProviderError, provider_call
from .logger import logger
from .machine import resolve_image_id, resolve_instance_type
from .provider import BastionProvider
from .readiness import (
    check_endpoints_ready,
    check_instance_ready,
    get_instance_endpoints,
)
from .rules import (
    rules_symmetric_difference,
    wanted_egress_rules,
    wanted_ingress_rules,
)
from .schemas.bastion import (
    ReconcileOutcome,
    ReconcileRequest,
    Succeeded,
)
from .schemas.provider import Direction, NetworkContext, SecurityRule
from .status import StatusWriter


def resolve_network(provider: BastionProvider, network_name: str) -> NetworkContext:
    with provider_call("look up network", network_name):
        network = provider.lookup_network(network_name)
    if network is None:
        raise ProviderError("look up network", network_name, "no network returned")

    with provider_call("look up subnet", network.subnet_id):
        subnet = provider.lookup_subnet(network.subnet_id)
    if subnet is None:
        raise ProviderError("look up subnet", network.subnet_id, "no subnet returned")

    return NetworkContext(
        network_id=network.network_id,
        subnet_id=subnet.subnet_id,
        zone_id=subnet.zone_id,
    )


def _rule_label(rule: SecurityRule) -> str:
    """Description plus the fields that tell rules with the same text apart."""
    source = rule.source_cidr_ip or rule.ipv6_source_cidr_ip or "any"
    label = f"{rule.description!r} ({rule.ip_protocol} {rule.port_range} from {source}"
    target = rule.dest_cidr_ip or rule.dest_group_id
    if target:
        label += f" to {target}"
    if rule.direction is Direction.EGRESS:
        label += f", {rule.policy}"
    return label + ")"


def _describe_rules(
    provider: BastionProvider, security_group_id: str, direction: Direction
) -> list[SecurityRule]:
    operation = f"describe {direction.value} rules of"
    with provider_call(operation, security_group_id):
        rules = provider.describe_rules(security_group_id, direction)
    if rules is None:
        raise ProviderError(operation, security_group_id, "no rule list returned")
    return list(rules)


def _apply_rule_diff(
    security_group_id: str,
    wanted: list[SecurityRule],
    current: list[SecurityRule],
    create: Callable[[str, SecurityRule], None],
    revoke: Callable[[str, SecurityRule], None],
) -> None:
    # A failure leaves earlier rules applied; the next pass diffs against that.
    to_add, to_delete = rules_symmetric_difference(wanted, current)

    for rule in to_add:
        kind = rule.direction.value
        label = _rule_label(rule)
        with provider_call(f"add security group {kind} rule", label):
            create(security_group_id, rule)
        logger.info(f"Added {kind} rule {label} to {security_group_id}")

    for rule in to_delete:
        kind = rule.direction.value
        label = _rule_label(rule)
        with provider_call(f"delete security group {kind} rule", label):
            revoke(security_group_id, rule)
        logger.info(f"Revoked {kind} rule {label} from {security_group_id}")


def reconcile_security_group_rules(
    provider: BastionProvider, request: ReconcileRequest, security_group_id: str
) -> None:
    opts = request.options

    current_ingress = _describe_rules(provider, security_group_id, Direction.INGRESS)
    _apply_rule_diff(
        security_group_id,
        wanted_ingress_rules(request.ingress),
        current_ingress,
        provider.create_ingress_rule,
        provider.revoke_ingress_rule,
    )

    # The workload side is provisioned independently of the bastion
    workload_group_name = opts.workload_security_group_name
    with provider_call("look up security group", workload_group_name):
        workload_group = provider.lookup_security_group(workload_group_name)
    if workload_group is None:
        raise ConfigurationError(
            f"workload security group {workload_group_name} not found"
        )

    with provider_call("look up instance", opts.instance_name):
        instance = provider.lookup_instance(opts.instance_name)
    if instance is None or instance.private_ip is None:
        raise ConfigurationError(
            f"bastion instance {opts.instance_name} does not have a private ip"
        )

    current_egress = _describe_rules(provider, security_group_id, Direction.EGRESS)
    _apply_rule_diff(
        security_group_id,
        wanted_egress_rules(instance.private_ip, workload_group.id),
        current_egress,
        provider.create_egress_rule,
        provider.revoke_egress_rule,
    )


def publish_endpoints(
    status_writer: StatusWriter, bastion_name: str, endpoints: BastionEndpoints
) -> None:
    """Merge-patches the public endpoint into the bastion status."""
    public = endpoints.public.model_dump() if endpoints.public else None
    with provider_call("publish status of bastion", bastion_name):
        status_writer.patch_status(bastion_name, {"ingress": public})
    logger.info(f"Published endpoint of bastion {bastion_name}: {public}")


def reconcile(
    provider: BastionProvider,
    request: ReconcileRequest,
    status_writer: StatusWriter,
) -> ReconcileOutcome:
    """
    Runs one reconcile pass.

    Returns Succeeded once the endpoint is published, or RequeueAfter when the
    bastion is still coming up. Raises BastionError on terminal failures.
    """
    opts = request.options
    logger.debug(f"Reconciling bastion {request.bastion_name} ({opts.instance_name})")

    image_id = resolve_image_id(opts, request.cluster)
    network = resolve_network(provider, opts.network_name)
    instance_type_id = resolve_instance_type(provider, network.zone_id, request.cluster)

    security_group_id = ensure_security_group(
        provider, opts.security_group_name, network.network_id
    )
    instance_id = ensure_compute_instance(
        provider,
        opts.instance_name,
        security_group_id,
        image_id,
        network.subnet_id,
        network.zone_id,
        instance_type_id,
        opts.user_data,
    )

    requeue = check_instance_ready(provider, opts.instance_name)
    if requeue is not None:
        logger.info(f"Requeue in {requeue.wait}: {requeue.cause}")
        return requeue

    reconcile_security_group_rules(provider, request, security_group_id)

    with provider_call("allocate public address for", opts.instance_name):
        public_ip = provider.allocate_public_address(instance_id)

    endpoints = get_instance_endpoints(provider, opts.instance_name, public_ip)

    requeue = check_endpoints_ready(endpoints)
    if requeue is not None:
        logger.info(f"Requeue in {requeue.wait}: {requeue.cause}")
        return requeue

    # Notify upstream about the ready instance
    publish_endpoints(status_writer, request.bastion_name, endpoints)
    return Succeeded(endpoints=endpoints)
