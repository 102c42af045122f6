from pydantic import BaseModel, ConfigDict


class Endpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    hostname: str | None = None
    ip: str | None = None


class BastionEndpoints(BaseModel):
    """
    Endpoints the bastion host provides.

    ``private`` is needed to open SSH on the workload nodes from the bastion,
    ``public`` is where the end user connects.
    """

    model_config = ConfigDict(frozen=True)

    private: Endpoint | None = None
    public: Endpoint | None = None

    def ready(self) -> bool:
        """True if both sides each have an IP or a hostname or both."""
        return endpoint_ready(self.private) and endpoint_ready(self.public)


def endpoint_ready(endpoint: Endpoint | None) -> bool:
    return endpoint is not None and bool(endpoint.hostname or endpoint.ip)


def address_to_endpoint(
    dns_name: str | None = None, ip_address: str | None = None
) -> Endpoint | None:
    """Returns None when both arguments are None."""
    if dns_name is None and ip_address is None:
        return None
    return Endpoint(hostname=dns_name, ip=ip_address)
