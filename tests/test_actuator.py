import copy

import pytest

from gardengcp.bastion.actuator import (
    Actuator,
    ensure_compute_instance,
    ensure_disk,
    ensure_firewall_rules,
    is_instance_deleted,
    remove_bastion_instance,
    remove_disk,
    remove_firewall_rules,
)
from gardengcp.bastion.compute import ComputeClient, Disk, Instance
from gardengcp.bastion.firewall import Firewall
from gardengcp.bastion.options import Bastion, Cluster, Options
from gardengcp.errors import GoogleAPIError, RequeueAfterError

INSTANCE_NAME = "cluster1-bastionName1-bastion-1cdc8"
NAT_IP = "203.0.113.7"
PRIVATE_IP = "10.250.0.5"


class FakeCompute(ComputeClient):
    def __init__(self, nat_ip=NAT_IP, delete_instantly=True, zones=None):
        self.instances = {}
        self.firewalls = {}
        self.disks = {}
        self.calls = []
        self.nat_ip = nat_ip
        self.delete_instantly = delete_instantly
        self.zones = zones or []
        self.fail_insert_instance = False

    def get_instance(self, project_id, zone, name):
        if name not in self.instances:
            raise GoogleAPIError(404, "not found")
        return self.instances[name]

    def insert_instance(self, project_id, zone, instance):
        self.calls.append(("insert_instance", instance.name))
        if self.fail_insert_instance:
            raise GoogleAPIError(500, "boom")
        created = copy.deepcopy(instance)
        created.status = "RUNNING"
        created.network_interfaces[0].network_ip = PRIVATE_IP
        created.network_interfaces[0].access_configs[0].nat_ip = self.nat_ip
        self.instances[instance.name] = created

    def delete_instance(self, project_id, zone, name):
        self.calls.append(("delete_instance", name))
        if self.delete_instantly:
            del self.instances[name]

    def get_firewall(self, project_id, name):
        if name not in self.firewalls:
            raise GoogleAPIError(404, "not found")
        return self.firewalls[name]

    def insert_firewall(self, project_id, firewall):
        self.calls.append(("insert_firewall", firewall.name))
        if firewall.name in self.firewalls:
            raise GoogleAPIError(409, "already exists")
        self.firewalls[firewall.name] = copy.deepcopy(firewall)

    def delete_firewall(self, project_id, name):
        self.calls.append(("delete_firewall", name))
        if name not in self.firewalls:
            raise GoogleAPIError(404, "not found")
        del self.firewalls[name]

    def patch_firewall(self, project_id, name, firewall):
        self.calls.append(("patch_firewall", name))
        self.firewalls[name].source_ranges = list(firewall.source_ranges)

    def get_disk(self, project_id, zone, name):
        if name not in self.disks:
            raise GoogleAPIError(404, "not found")
        return self.disks[name]

    def insert_disk(self, project_id, zone, disk):
        self.calls.append(("insert_disk", disk.name))
        self.disks[disk.name] = disk

    def delete_disk(self, project_id, zone, name):
        self.calls.append(("delete_disk", name))
        del self.disks[name]

    def get_region_zones(self, project_id, region):
        return list(self.zones)


def make_cluster(regions=None):
    return Cluster(
        name="cluster1",
        region="us-west",
        infrastructure_config=b'{"networks": {"workers": "10.250.0.0/16"}}',
        regions={"us-west": ["us-west1-a", "us-west1-b"]} if regions is None else regions,
    )


def make_bastion():
    return Bastion(name="bastionName1", namespace="shoot--foo", ingress=["213.69.151.0/24"])


def make_options():
    return Options(
        project_id="test-project",
        zone="us-west1-a",
        bastion_instance_name="test-bastion1",
        cidrs=["213.69.151.0/24"],
        disk_name="test-bastion1-disk",
        workers_cidr="10.250.0.0/16",
    )


def test_reconcile_creates_resources_and_publishes_endpoint():
    fake = FakeCompute()
    bastion = make_bastion()
    Actuator(lambda ns: (fake, "projectID")).reconcile(bastion, make_cluster())

    assert bastion.provider_status == b'{"zone":"us-west1-a"}'
    assert bastion.status_ingress.ip == NAT_IP
    assert bastion.status_ingress.hostname == ""
    assert set(fake.firewalls) == {
        INSTANCE_NAME + "-allow-ssh",
        INSTANCE_NAME + "-deny-all",
        INSTANCE_NAME + "-egress-worker",
    }
    assert INSTANCE_NAME + "-disk" in fake.disks
    assert INSTANCE_NAME in fake.instances


def test_reconcile_is_idempotent():
    fake = FakeCompute()
    actuator = Actuator(lambda ns: (fake, "projectID"))
    actuator.reconcile(make_bastion(), make_cluster())
    fake.calls.clear()
    actuator.reconcile(make_bastion(), make_cluster())
    assert not any(c[0] in ("insert_instance", "insert_disk", "patch_firewall") for c in fake.calls)


def test_reconcile_requeues_without_public_ip():
    fake = FakeCompute(nat_ip="")
    with pytest.raises(RequeueAfterError) as info:
        Actuator(lambda ns: (fake, "projectID")).reconcile(make_bastion(), make_cluster())
    assert info.value.requeue_after == 5


def test_reconcile_falls_back_to_region_zone():
    fake = FakeCompute(zones=["https://compute.example.com/zones/us-west1-c"])
    bastion = make_bastion()
    Actuator(lambda ns: (fake, "projectID")).reconcile(bastion, make_cluster(regions={}))
    assert bastion.provider_status == b'{"zone":"us-west1-c"}'


def test_reconcile_wraps_factory_failure():
    def factory(ns):
        raise OSError("no secret")

    with pytest.raises(RuntimeError, match="failed to create GCP client"):
        Actuator(factory).reconcile(make_bastion(), make_cluster())


def test_reconcile_wraps_bad_options():
    bastion = make_bastion()
    bastion.ingress = ["1234"]
    with pytest.raises(RuntimeError, match="failed to determine Options"):
        Actuator(lambda ns: (FakeCompute(), "projectID")).reconcile(bastion, make_cluster())


def test_ensure_firewall_rules_patches_changed_cidrs():
    fake = FakeCompute()
    opt = make_options()
    fake.firewalls["test-bastion1-allow-ssh"] = Firewall(
        name="test-bastion1-allow-ssh", source_ranges=["198.51.100.0/24"]
    )
    ensure_firewall_rules(fake, opt)
    assert ("patch_firewall", "test-bastion1-allow-ssh") in fake.calls
    assert fake.firewalls["test-bastion1-allow-ssh"].source_ranges == ["213.69.151.0/24"]


def test_ensure_firewall_rules_no_patch_when_equal():
    fake = FakeCompute()
    ensure_firewall_rules(fake, make_options())
    assert not any(c[0] == "patch_firewall" for c in fake.calls)
    assert len(fake.firewalls) == 3


def test_ensure_disk_skips_existing():
    fake = FakeCompute()
    opt = make_options()
    fake.disks[opt.disk_name] = Disk(name=opt.disk_name)
    ensure_disk(fake, opt)
    assert fake.calls == []


def test_ensure_disk_creates_missing():
    fake = FakeCompute()
    opt = make_options()
    ensure_disk(fake, opt)
    assert fake.disks[opt.disk_name].source_image == (
        "projects/debian-cloud/global/images/family/debian-10"
    )


def test_ensure_compute_instance_wraps_insert_failure():
    fake = FakeCompute()
    fake.fail_insert_instance = True
    with pytest.raises(RuntimeError, match="failed to create bastion compute instance"):
        ensure_compute_instance(fake, make_bastion(), make_options())


def test_ensure_compute_instance_returns_existing():
    fake = FakeCompute()
    existing = Instance(name="test-bastion1", status="RUNNING")
    fake.instances["test-bastion1"] = existing
    assert ensure_compute_instance(fake, make_bastion(), make_options()) is existing


def test_delete_removes_everything():
    fake = FakeCompute()
    actuator = Actuator(lambda ns: (fake, "projectID"))
    actuator.reconcile(make_bastion(), make_cluster())
    actuator.delete(make_bastion(), make_cluster())
    assert fake.instances == {}
    assert fake.disks == {}
    assert fake.firewalls == {}


def test_delete_requeues_while_instance_deleting():
    fake = FakeCompute(delete_instantly=False)
    actuator = Actuator(lambda ns: (fake, "projectID"))
    actuator.reconcile(make_bastion(), make_cluster())
    with pytest.raises(RequeueAfterError) as info:
        actuator.delete(make_bastion(), make_cluster())
    assert info.value.requeue_after == 10
    assert INSTANCE_NAME + "-disk" in fake.disks


def test_remove_firewall_rules_order_and_missing_ignored():
    fake = FakeCompute()
    remove_firewall_rules(fake, make_options())
    assert [c[1] for c in fake.calls] == [
        "test-bastion1-allow-ssh",
        "test-bastion1-deny-all",
        "test-bastion1-egress-worker",
    ]


def test_remove_instance_and_disk_when_absent_make_no_calls():
    fake = FakeCompute()
    opt = make_options()
    remove_bastion_instance(fake, opt)
    remove_disk(fake, opt)
    assert fake.calls == []
    assert is_instance_deleted(fake, opt) is True


def test_is_instance_deleted_false_when_present():
    fake = FakeCompute()
    fake.instances["test-bastion1"] = Instance(name="test-bastion1")
    assert is_instance_deleted(fake, make_options()) is False