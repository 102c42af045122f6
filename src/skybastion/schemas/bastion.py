from __future__ import annotations

from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field, IPvAnyNetwork

from ..endpoints import BastionEndpoints


class MachineType(BaseModel):
    name: str
    cpu: int | None = None
    memory: str | None = Field(default=None, description="e.g. 4Gi")


class MachineImage(BaseModel):
    name: str
    version: str
    regions: dict[str, str] = Field(
        default_factory=dict, description="region -> provider image id"
    )


class ClusterMetadata(BaseModel):
    """Cluster-level facts the bastion is provisioned against."""

    machine_types: list[MachineType] = Field(default_factory=list)
    machine_images: list[MachineImage] = Field(default_factory=list)


class BastionOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    region: str
    instance_name: str
    security_group_name: str
    workload_security_group_name: str
    network_name: str
    image_id: str | None = None
    user_data: str = ""

    @classmethod
    def from_names(
        cls,
        cluster_name: str,
        bastion_name: str,
        region: str,
        user_data: str = "",
        image_id: str | None = None,
    ) -> BastionOptions:
        """Derives resource names from the cluster and bastion names."""
        instance_name = f"{cluster_name}-{bastion_name}-bastion"
        return cls(
            region=region,
            instance_name=instance_name,
            security_group_name=f"{instance_name}-sg",
            workload_security_group_name=f"{cluster_name}-sg",
            network_name=f"{cluster_name}-vpc",
            image_id=image_id,
            user_data=user_data,
        )


class ReconcileRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    bastion_name: str
    options: BastionOptions
    cluster: ClusterMetadata = Field(default_factory=ClusterMetadata)
    ingress: list[IPvAnyNetwork] = Field(
        default_factory=list, description="CIDRs allowed to reach the bastion via SSH"
    )


class Succeeded(BaseModel):
    endpoints: BastionEndpoints


class RequeueAfter(BaseModel):
    """Not an error: the caller should run the pass again after ``wait``."""

    wait: timedelta
    cause: str


ReconcileOutcome = Succeeded | RequeueAfter
