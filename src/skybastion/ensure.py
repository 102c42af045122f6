from .errors import ProviderError, provider_call
from .logger import logger
from .provider import BastionProvider


def ensure_security_group(provider: BastionProvider, name: str, network_id: str) -> str:
    """
    Returns the id of the security group called ``name``, creating it in the
    given network when absent. An existing group is never updated; only its
    rules are reconciled. If the cloud holds several groups with that name,
    the first one returned wins.
    """
    with provider_call("look up security group", name):
        group = provider.lookup_security_group(name)

    if group is not None and group.name == name:
        logger.info(f"Security group {name} found ({group.id})")
        return group.id

    logger.info(f"Creating security group {name}")

    with provider_call("create security group", name):
        created = provider.create_security_group(network_id, name)

    if created is None or not created.id:
        raise ProviderError("create security group", name, "no id returned")
    return created.id


def ensure_compute_instance(
    provider: BastionProvider,
    name: str,
    security_group_id: str,
    image_id: str,
    subnet_id: str,
    zone_id: str,
    instance_type_id: str,
    user_data: str,
) -> str:
    """
    Returns the id of the instance called ``name``, creating it when absent.

    Existing instances are returned as-is, without drift correction. Whether the
    instance comes up is checked by the readiness probe, not here.
    """
    with provider_call("look up instance", name):
        instance = provider.lookup_instance(name)

    if instance is not None and instance.name == name:
        return instance.id

    logger.info(f"Creating bastion instance {name} ({instance_type_id})")

    with provider_call("create instance", name):
        created = provider.create_instance(
            name,
            security_group_id,
            image_id,
            subnet_id,
            zone_id,
            instance_type_id,
            user_data,
        )

    if created is None or not created.id:
        raise ProviderError("create instance", name, "no id returned")
    return created.id
