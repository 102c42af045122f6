from datetime import timedelta

from google.api_core.exceptions import (
    InternalServerError,
    ServiceUnavailable,
    TooManyRequests,
)
from tenacity import (
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# Shared retry configuration for provider reads (get/list only)
# usage: @retry(**RETRY_CONFIG)
RETRY_CONFIG = {
    "stop": stop_after_attempt(3),
    "wait": wait_exponential(multiplier=1, min=4, max=10),
    "retry": retry_if_exception_type(
        (InternalServerError, ServiceUnavailable, TooManyRequests)
    ),
    "reraise": True,
}

# Requeue intervals handed back to the outer control loop.
# The public endpoint is polled sooner because an operator is usually
# waiting on it to open an SSH session.
INSTANCE_NOT_READY_REQUEUE = timedelta(seconds=10)
ENDPOINTS_NOT_READY_REQUEUE = timedelta(seconds=5)

# Core counts probed (in order) when picking the bastion machine type
INSTANCE_CORE_CANDIDATES = (1, 2)

AVAILABLE_STATUS = "Available"

SSH_PROTOCOL = "tcp"
SSH_PORT_RANGE = "22/22"
ALL_PROTOCOLS = "all"
ALL_PORTS = "-1/-1"

DEFAULT_INGRESS_CIDR = "0.0.0.0/0"
ANY_IPV4_CIDR = "0.0.0.0/0"

INGRESS_SSH_DESCRIPTION = "SSH access for Bastion"
EGRESS_SSH_DESCRIPTION = "Allow Bastion egress to workload nodes"
EGRESS_DENY_DESCRIPTION = "Bastion egress deny"
