from ipaddress import ip_network

import pytest
from google.api_core.exceptions import NotFound

from skybastion.providers.gcp import GCPProvider, _port_range, _ports
from skybastion.rules import egress_allow_ssh_to_workload, ingress_allow_ssh
from skybastion.schemas.provider import Direction, InstanceStatus


@pytest.fixture
def gcp(mocker):
    clients = {
        name: mocker.patch(f"skybastion.providers.gcp.get_{name}_client").return_value
        for name in ("firewalls", "instances", "networks", "subnetworks", "machine_types")
    }
    provider = GCPProvider(project_id="test-project", zone="us-west1-b")
    return provider, clients


def _firewall(mocker, name, fw_id, tags, direction="INGRESS", description=""):
    fw = mocker.Mock()
    fw.name = name
    fw.id = fw_id
    fw.network = "global/networks/shoot-vpc"
    fw.target_tags = tags
    fw.direction = direction
    fw.description = description
    fw.priority = 1000
    fw.source_ranges = []
    fw.destination_ranges = []
    fw.allowed = []
    fw.denied = []
    return fw


def test_port_conversion():
    assert _ports("22/22") == ["22"]
    assert _ports("1/1024") == ["1-1024"]
    assert _ports("-1/-1") == []
    assert _port_range(["22"]) == "22/22"
    assert _port_range(["1-1024"]) == "1/1024"
    assert _port_range([]) == "-1/-1"


def test_lookup_security_group_not_found(gcp):
    provider, clients = gcp
    clients["firewalls"].get.side_effect = NotFound("no such firewall")

    assert provider.lookup_security_group("bastion-sg") is None


def test_create_security_group_inserts_anchor(gcp, mocker):
    provider, clients = gcp
    clients["firewalls"].get.return_value = _firewall(
        mocker, "bastion-sg", 42, ["bastion-sg"]
    )

    group = provider.create_security_group("global/networks/shoot-vpc", "bastion-sg")

    assert group.id == "42"
    assert group.name == "bastion-sg"
    anchor = clients["firewalls"].insert.call_args.kwargs["firewall_resource"]
    assert anchor.name == "bastion-sg"
    assert list(anchor.target_tags) == ["bastion-sg"]
    assert anchor.priority == 65535
    clients["firewalls"].insert.return_value.result.assert_called_once()


def test_describe_rules_round_trips_rules(gcp, mocker):
    provider, clients = gcp
    wanted = ingress_allow_ssh(ip_network("203.0.113.0/24"))

    anchor = _firewall(mocker, "bastion-sg", 42, ["bastion-sg"])
    rule_fw = _firewall(
        mocker,
        "bastion-sg-i-abc",
        43,
        ["bastion-sg"],
        description=wanted.model_dump_json(exclude={"handle", "priority"}),
    )
    foreign = _firewall(mocker, "hand-made", 44, ["bastion-sg"], description="manual")
    foreign.allowed = [mocker.Mock(I_p_protocol="tcp", ports=["80"])]
    foreign.source_ranges = ["0.0.0.0/0"]
    egress = _firewall(mocker, "bastion-sg-e-def", 45, ["bastion-sg"], "EGRESS")
    unrelated = _firewall(mocker, "other", 46, ["workers"])
    clients["firewalls"].list.return_value = [anchor, rule_fw, foreign, egress, unrelated]

    rules = provider.describe_rules("42", Direction.INGRESS)

    assert [r.handle for r in rules] == ["bastion-sg-i-abc", "hand-made"]
    assert rules[0].semantic_key() == wanted.semantic_key()
    assert rules[0].priority == 1000
    assert rules[1].description == "manual"
    assert rules[1].port_range == "80/80"
    assert rules[1].source_cidr_ip == "0.0.0.0/0"


def test_create_ingress_rule(gcp, mocker):
    provider, clients = gcp
    clients["firewalls"].list.return_value = [
        _firewall(mocker, "bastion-sg", 42, ["bastion-sg"])
    ]

    provider.create_ingress_rule("42", ingress_allow_ssh(ip_network("2001:db8::/32")))

    fw = clients["firewalls"].insert.call_args.kwargs["firewall_resource"]
    assert fw.name.startswith("bastion-sg-i-")
    assert fw.direction == "INGRESS"
    assert list(fw.source_ranges) == ["2001:db8::/32"]
    assert list(fw.allowed[0].ports) == ["22"]
    assert list(fw.target_tags) == ["bastion-sg"]


def test_create_egress_rule_towards_group(gcp, mocker):
    provider, clients = gcp
    clients["firewalls"].list.return_value = [
        _firewall(mocker, "bastion-sg", 42, ["bastion-sg"]),
        _firewall(mocker, "shoot-sg", 7, ["shoot-sg"]),
    ]
    clients["subnetworks"].list.return_value = [mocker.Mock(ip_cidr_range="10.250.0.0/16")]

    provider.create_egress_rule("42", egress_allow_ssh_to_workload("10.0.0.5", "7"))

    fw = clients["firewalls"].insert.call_args.kwargs["firewall_resource"]
    assert fw.direction == "EGRESS"
    assert list(fw.destination_ranges) == ["10.250.0.0/16"]


def test_revoke_rule_deletes_firewall(gcp):
    provider, clients = gcp
    rule = ingress_allow_ssh(ip_network("203.0.113.0/24")).model_copy(
        update={"handle": "bastion-sg-i-abc"}
    )

    provider.revoke_ingress_rule("42", rule)

    clients["firewalls"].delete.assert_called_once_with(
        project="test-project", firewall="bastion-sg-i-abc"
    )


def _gce_instance(mocker, status="RUNNING", nat_ip=None):
    instance = mocker.Mock()
    instance.name = "bastion-1"
    instance.id = 12345
    instance.status = status
    nic = mocker.Mock()
    nic.name = "nic0"
    nic.network_i_p = "10.0.0.5"
    nic.access_configs = [mocker.Mock(nat_i_p=nat_ip)] if nat_ip else []
    instance.network_interfaces = [nic]
    return instance


def test_lookup_instance(gcp, mocker):
    provider, clients = gcp
    clients["instances"].list.return_value = [_gce_instance(mocker, "STAGING")]

    instance = provider.lookup_instance("bastion-1")

    assert instance.id == "12345"
    assert instance.status is InstanceStatus.PENDING
    assert instance.private_ip == "10.0.0.5"
    assert instance.public_ip is None


def test_lookup_instance_absent(gcp):
    provider, clients = gcp
    clients["instances"].list.return_value = []
    assert provider.lookup_instance("bastion-1") is None


def test_allocate_public_address_already_attached(gcp, mocker):
    provider, clients = gcp
    clients["instances"].list.return_value = [
        _gce_instance(mocker, nat_ip="198.51.100.9")
    ]

    assert provider.allocate_public_address("12345") == "198.51.100.9"
    clients["instances"].add_access_config.assert_not_called()


def test_allocate_public_address_attaches(gcp, mocker):
    provider, clients = gcp
    clients["instances"].list.side_effect = [
        [_gce_instance(mocker)],
        [_gce_instance(mocker, nat_ip="198.51.100.9")],
    ]

    assert provider.allocate_public_address("12345") == "198.51.100.9"
    kwargs = clients["instances"].add_access_config.call_args.kwargs
    assert kwargs["instance"] == "bastion-1"
    assert kwargs["network_interface"] == "nic0"


def test_list_instance_type_availability(gcp, mocker):
    provider, clients = gcp
    big = mocker.Mock(memory_mb=4096, deprecated=None)
    big.name = "e2-medium"
    small = mocker.Mock(memory_mb=1024, deprecated=None)
    small.name = "e2-micro"
    clients["machine_types"].list.return_value = [big, small]

    info = provider.list_instance_type_availability(2, "us-west1-b")

    assert info.available_type() == "e2-micro"


def test_list_instance_type_availability_empty(gcp):
    provider, clients = gcp
    clients["machine_types"].list.return_value = []

    assert provider.list_instance_type_availability(1, "us-west1-b").available_type() is None


def test_lookup_network_and_subnet(gcp, mocker):
    provider, clients = gcp
    network = mocker.Mock(
        self_link="https://compute/projects/p/global/networks/shoot-vpc",
        subnetworks=[
            "https://compute/projects/p/regions/europe-west1/subnetworks/eu",
            "https://compute/projects/p/regions/us-west1/subnetworks/nodes",
        ],
    )
    network.name = "shoot-vpc"
    clients["networks"].get.return_value = network
    subnet = mocker.Mock(
        self_link="https://compute/projects/p/regions/us-west1/subnetworks/nodes",
        region="https://compute/projects/p/regions/us-west1",
        ip_cidr_range="10.250.0.0/16",
    )
    subnet.name = "nodes"
    clients["subnetworks"].get.return_value = subnet

    info = provider.lookup_network("shoot-vpc")
    assert info.subnet_id.endswith("/regions/us-west1/subnetworks/nodes")

    subnet_info = provider.lookup_subnet(info.subnet_id)
    assert subnet_info.zone_id == "us-west1-b"
    clients["subnetworks"].get.assert_called_once_with(
        project="test-project", region="us-west1", subnetwork="nodes"
    )
