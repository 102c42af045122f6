from .core import ENDPOINTS_NOT_READY_REQUEUE, INSTANCE_NOT_READY_REQUEUE
from .endpoints import BastionEndpoints, address_to_endpoint
from .errors import ConfigurationError, InstanceStateError, provider_call
from .provider import BastionProvider
from .schemas.bastion import RequeueAfter
from .schemas.provider import InstanceStatus


def check_instance_ready(provider: BastionProvider, name: str) -> RequeueAfter | None:
    """
    Returns a requeue signal while the instance is not Running, None once it is.

    The instance must exist: it was ensured earlier in the same pass.
    """
    with provider_call("look up instance", name):
        instance = provider.lookup_instance(name)

    if instance is None:
        raise InstanceStateError(f"bastion instance {name} not yet created")

    if instance.status is not InstanceStatus.RUNNING:
        return RequeueAfter(
            wait=INSTANCE_NOT_READY_REQUEUE,
            cause=f"bastion instance {name} not ready yet ({instance.status.value})",
        )
    return None


def get_instance_endpoints(
    provider: BastionProvider, name: str, public_ip: str | None
) -> BastionEndpoints:
    """Pairs the instance private IP with the allocated public IP."""
    with provider_call("look up instance", name):
        instance = provider.lookup_instance(name)

    if instance is None:
        raise InstanceStateError(f"bastion instance {name} disappeared")
    if instance.status is not InstanceStatus.RUNNING:
        raise InstanceStateError(
            f"bastion instance {name} is {instance.status.value}, expected Running"
        )
    if instance.private_ip is None:
        raise ConfigurationError(f"bastion instance {name} does not have a private ip")

    return BastionEndpoints(
        private=address_to_endpoint(ip_address=instance.private_ip),
        public=address_to_endpoint(ip_address=public_ip),
    )


def check_endpoints_ready(endpoints: BastionEndpoints) -> RequeueAfter | None:
    if endpoints.ready():
        return None
    return RequeueAfter(
        wait=ENDPOINTS_NOT_READY_REQUEUE,
        cause="bastion instance has no public/private endpoints yet",
    )
