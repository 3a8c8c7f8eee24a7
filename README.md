# gardengcp

Reconciliation logic for a GCP cluster provider: bastion hosts, DNS
records and infrastructure network validation. The package holds no cloud
SDK. You pass in client objects that make the API calls, so the same
logic runs against real clients or test doubles.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Bastion hosts

### Options

`gardengcp.bastion.options.determine_options(bastion, cluster, project_id)`
works out everything a bastion needs from a `Bastion` and a `Cluster`. It
creates nothing and returns an `Options` object with:

- `bastion_instance_name`: built by
  `generate_bastion_base_resource_name` from the cluster and bastion names
  (cut to 33 characters) plus `-bastion-` and the first five hex digits of
  their SHA-256 hash. This keeps derived names within GCP's 63-character
  limit.
- `zone`: the zone stored in the bastion's provider status. If there is
  none, the first zone of the cluster's region. If that is missing too,
  an empty string.
- `disk_name`: the instance name with `-disk` appended.
- `subnetwork`: `regions/<region>/subnetworks/<cluster>-nodes`.
- `network`: `projects/<project>/global/networks/<vpc or cluster name>`.
- `workers_cidr`: read from the cluster's `infrastructure_config` JSON.
- `cidrs`: the ingress CIDRs, normalised by `ingress_permissions`.
  Invalid CIDRs and IPv6 CIDRs raise `ValueError`.

`marshal_provider_status` and `unmarshal_provider_status` encode and
decode the zone as compact JSON, for example `{"zone":"us-west1-a"}`.

```python
from gardengcp.bastion.options import Bastion, Cluster, determine_options

cluster = Cluster(
    name="cluster1",
    region="us-west",
    infrastructure_config=b'{"networks": {"workers": "10.250.0.0/16"}}',
    regions={"us-west": ["us-west1-a", "us-west1-b"]},
)
bastion = Bastion(name="bastionName1", ingress=["213.69.151.0/24"])
opt = determine_options(bastion, cluster, "projectID")
opt.bastion_instance_name   # "cluster1-bastionName1-bastion-1cdc8"
```

### Firewall rules

`gardengcp.bastion.firewall` builds the three firewall rules of a bastion,
each as a `Firewall`:

- `ingress_allow_ssh` lets TCP port 22 in from the allowed CIDRs
  (priority 50).
- `egress_deny_all` denies all egress to `0.0.0.0/0` (priority 1000).
- `egress_allow_only` lets TCP port 22 out to the workers CIDR only
  (priority 60).

`patch_cidrs` returns a patch body that replaces only the source ranges.

### Compute helpers

`gardengcp.bastion.compute` defines the abstract `ComputeClient` that you
implement. Its methods raise `gardengcp.errors.GoogleAPIError` on failure.
On top of that client the module provides:

- Lookups that return `None` when the resource does not exist (HTTP 404):
  `get_bastion_instance`, `get_firewall_rule` and `get_disk`.
- `create_firewall_rule_if_not_exist`, which ignores a conflict (HTTP 409).
- `delete_firewall_rule`, which ignores a rule that does not exist.
- `patch_firewall_rule` and `get_default_gcp_zone`.
- `compute_instance_define` and `disk_define`, which describe the
  `n1-standard-1` instance and its 10 GB Debian boot disk.
- `get_instance_endpoints`, which turns a `RUNNING` `Instance` into
  `BastionEndpoints`. The private endpoint is the instance name and its
  internal IP. The public endpoint is the NAT IP.

### Actuator

`gardengcp.bastion.actuator.Actuator(client_factory)` takes a callable. It
is called with the bastion's namespace and returns a
`(ComputeClient, project_id)` pair.

`reconcile(bastion, cluster)`:

- stores the zone in `bastion.provider_status`;
- makes sure the firewall rules exist, and patches the SSH rule's source
  ranges if they differ;
- makes sure the disk and the instance exist;
- sets `bastion.status_ingress` to the public endpoint.

If the endpoints are not ready yet, it raises `RequeueAfterError` with a
5-second delay.

`delete(bastion, cluster)` starts deleting the instance. While the
instance still exists, it raises `RequeueAfterError` with a 10-second
delay. Once the instance is gone, it removes the disk and the three
firewall rules.

The module-level helpers `ensure_firewall_rules`, `ensure_disk`,
`ensure_compute_instance`, `remove_bastion_instance`,
`is_instance_deleted`, `remove_disk` and `remove_firewall_rules` can also
be called directly.

## DNS records

`gardengcp.dnsrecord.DNSRecordActuator(client_factory)` works with a
`DNSClientFactory`, whose `new_dns_client(secret_ref)` returns a
`DNSClient`.

- `reconcile(dns)` creates or updates the record set, with a default TTL
  of 120. If `last_operation` is unset or `"Create"`, it also deletes the
  TXT meta record named by `get_meta_record_name`. It then records the
  zone in `dns.status_zone`.
- `delete(dns)` deletes the record set.
- `restore(dns)` does the same as `reconcile`.
- `migrate(dns)` does nothing.

The managed zone is taken from `dns.zone`, then from `dns.status_zone`.
If neither is set, `find_zone_for_name` picks the managed zone whose DNS
name is the longest suffix of the record name. If no zone matches,
`LookupError` is raised. Provider failures raise `RequeueAfterError` with
a 30-second delay.

## Infrastructure validation

`gardengcp.configvalidator.ConfigValidator(client_factory)` takes a
`ComputeClientFactory`. Its `new_compute_client(secret_ref)` returns an
object with `get_external_addresses(region)`.

`validate(infra)` decodes the `Infrastructure`'s provider config and checks
each Cloud NAT IP name. A name is accepted only if it exists and is
unused, or is used only by the cluster's cloud router. That router is
`<namespace>-cloud-router` unless the VPC configures another one.

The result is a list of `FieldError` entries, each with an `ErrorType`:

- `NOT_FOUND` for a name that does not exist;
- `INVALID` for a name already in use;
- `INTERNAL` for a config that cannot be decoded or a failing client.

`validate_networks` runs the same check on an already decoded `networks`
mapping.

## What this package does not do

- It contains no GCP or Kubernetes API clients. You supply them.
- It runs no controller loop and watches nothing.
- It keeps results on the objects passed in. Writing status back to a
  cluster is up to the caller, and so is retrying after a
  `RequeueAfterError`.
- It does not provision shoot infrastructure, control planes or workers.
  It only validates the network part of an infrastructure config.