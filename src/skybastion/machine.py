from collections.abc import Iterable

from .core import INSTANCE_CORE_CANDIDATES
from .errors import ConfigurationError, provider_call
from .logger import logger
from .provider import BastionProvider
from .schemas.bastion import BastionOptions, ClusterMetadata


def resolve_instance_type(
    provider: BastionProvider,
    zone_id: str,
    cluster: ClusterMetadata,
    core_candidates: Iterable[int] = INSTANCE_CORE_CANDIDATES,
) -> str:
    """
    Picks the smallest instance type available in the zone, probing the core
    counts in order, and falls back to the first machine type of the cluster.
    """
    for cores in core_candidates:
        with provider_call("list instance types in", f"{zone_id} ({cores} cores)"):
            availability = provider.list_instance_type_availability(cores, zone_id)

        if availability is None:
            continue
        instance_type_id = availability.available_type()
        if instance_type_id:
            return instance_type_id

    if not cluster.machine_types:
        raise ConfigurationError(
            "failed to determine instance type from cluster metadata as fallback: "
            "machine types missing"
        )

    fallback = cluster.machine_types[0].name
    logger.info(
        "Falling back to first machine type of the cluster "
        f"as bastion instance type: {fallback}"
    )
    return fallback


def resolve_image_id(options: BastionOptions, cluster: ClusterMetadata) -> str:
    """Explicit image id first, else the first cluster image built for the region."""
    if options.image_id:
        return options.image_id

    for image in cluster.machine_images:
        image_id = image.regions.get(options.region)
        if image_id:
            return image_id

    raise ConfigurationError(
        f"no machine image found for region {options.region} in cluster metadata"
    )
