# kubedns

Building blocks for running DNS inside a container cluster, as a library.

- **Record tree cache** (`kubedns.treecache.TreeCache`): service records
  stored under a path of labels, with wildcard lookups (`*`), subtree
  grafting (`set_sub_cache`), path deletion (`delete_path`) and a
  tab-indented JSON dump of the whole tree (`serialize`).
- **Record helpers** (`kubedns.dnsutil`): the `Service` record, building
  one with default priority, weight and TTL (`new_service_record`,
  `get_sky_msg`), its FNV-1a hash (`hash_service_record`), the storage path
  of a name (`service_path`), turning `in-addr.arpa.` names back into IP
  addresses (`extract_ip`, which returns `None` for other names),
  validating `ip[:port]` nameserver strings
  (`validate_nameserver_ip_and_port`, raising `ValueError`) and
  `is_service_ip_set` for a cluster IP string.
- **Federation flags** (`kubedns.federation`): `parse_federations_flag`
  turns `name=domain,name=domain` into a dict, checking names as DNS-1123
  labels and domains as DNS-1123 subdomains; bad input raises
  `InvalidFederationError`.
- **dnsmasq nanny** (`kubedns.nanny`): `extract_dnsmasq_args` splits a
  command line at `--`; `Nanny` turns stub domains and upstream nameservers
  into dnsmasq `--server` arguments, starts dnsmasq as a child process,
  relays its output to the log, and lets you `wait()` for or `kill()` it.
  Failures raise `NannyError`.
- **dnsmasq metrics** (`kubedns.dnsmasq_metrics`): `MetricsClient` reads
  cache hits, misses, evictions, insertions and size from dnsmasq over
  CHAOS TXT queries (`hits.bind.` and so on); failures raise
  `MetricsError`.
- **Sidecar** (`kubedns.sidecar_server`, `kubedns.dnsprobe`,
  `kubedns.sidecar_metrics`, `kubedns.sidecar_options`): periodic DNS
  probes with a `/healthcheck/<label>` JSON endpoint, and dnsmasq cache
  counters exported in the Prometheus text format, with `/healthz`
  alongside.
- **Version flag** (`kubedns.version`): `add_version_argument` adds
  `--version` to an `argparse` parser (a bare `--version` means `true`,
  `--version=raw` asks for the quoted raw version string), and
  `print_and_exit_if_requested` prints and exits when asked.
- **Logging helper** (`kubedns.logutil.log_with_prefix`): logs each line
  of a text as `<prefix> | <line>`.
- **End-to-end tooling** (`kubedns.e2e_*`): wrappers around `docker` and
  `sudo` for standing up a throwaway cluster (`e2e_cluster.Cluster`,
  `e2e_docker.Docker`, `e2e_framework.init_framework`), driving a kube-dns
  binary in it (`e2e_kubedns.KubeDNS`) and exercising the nanny through
  its configuration files (`e2e_harness.Harness`). Fatal errors raise
  `SystemExit`.

Python 3.10 or later is required; the only runtime dependency is
`dnspython`.

## Examples

A tree cache of service records:

```python
from kubedns.dnsutil import new_service_record
from kubedns.treecache import TreeCache

cache = TreeCache()
cache.set_entry("web", new_service_record("10.0.0.5", 80), "web.svc.cluster.", "cluster", "svc")

cache.get_entry("web", "cluster", "svc")                 # the stored record, or None
cache.get_values_for_path_with_wildcards("cluster", "*")  # every record one level down
print(cache.serialize())                                  # indented JSON of the tree
cache.delete_path("cluster", "svc")                       # True: the node was removed
```

Validating a nameserver address:

```python
from kubedns.dnsutil import validate_nameserver_ip_and_port

validate_nameserver_ip_and_port("1.2.3.4")      # ("1.2.3.4", "53")
validate_nameserver_ip_and_port("1.2.3.4:53")   # ("1.2.3.4", "53")
```

Parsing the federations flag:

```python
from kubedns.federation import InvalidFederationError, parse_federations_flag

parse_federations_flag("a=b,cc=dd")   # {"a": "b", "cc": "dd"}

try:
    parse_federations_flag("a.b.c=d.e.f")
except InvalidFederationError as exc:
    print(exc)
```

Reading dnsmasq cache statistics:

```python
from kubedns.dnsmasq_metrics import MetricsClient, MetricsError

client = MetricsClient("127.0.0.1", 53, 2.0)
try:
    metrics = client.get_metrics()   # {MetricName.CACHE_HITS: ..., ...}
except MetricsError as exc:
    print("dnsmasq did not answer:", exc)
```

Splitting a command line at `--` and running dnsmasq under the nanny:

```python
from kubedns.nanny import Nanny, extract_dnsmasq_args

dnsmasq_args, other_args = extract_dnsmasq_args(["-v", "--", "-k"])
# dnsmasq_args == ["-k"], other_args == ["-v"]

nanny = Nanny("dnsmasq")
nanny.configure(
    ["-k", "--cache-size=1000"],
    {"acme.local": ["1.1.1.1"]},
    ["8.8.8.8"],
    "127.0.0.1:10053",
)
nanny.start()
nanny.wait()   # returns 0, or raises NannyError if dnsmasq exits with an error
```

Servers given as `host:port` are rewritten to dnsmasq's `host#port` form.
Stub-domain servers that are names rather than IPs are resolved first:
names ending in `cluster.local` through the given kube-dns address, others
through the system resolver. Listing upstream servers adds `--no-resolv`
so that `/etc/resolv.conf` is ignored.

## Running the sidecar

`kubedns.sidecar_options.Options` holds the defaults: dnsmasq at
`127.0.0.1:53` polled every 5000 ms, metrics served on `0.0.0.0:10054`
under `/metrics` with the `kubedns` namespace. Add `DNSProbeOption`
entries (label, server as `host:port`, name, interval in seconds, record
type) to its `probes` list, then:

```python
from kubedns.sidecar_options import DNSProbeOption, Options
from kubedns.sidecar_server import SidecarServer

options = Options(probes=[DNSProbeOption("kubedns", "127.0.0.1:53", "kubernetes.default.svc.cluster.local.", 5.0, 1)])
SidecarServer(options).run()   # does not return
```

The metrics endpoint exposes `<namespace>_dnsmasq_hits`, `_misses`,
`_evictions`, `_insertions`, `_max_size` and `_errors`, and for each probe
`<namespace>_probe_<label>_latency_ms` and `<namespace>_probe_<label>_errors`.
`SidecarServer.poll_once()` fetches and exports dnsmasq's statistics a
single time.

## What this package does not do

- It installs no command-line programs; everything is used from Python.
- It is not itself a cluster DNS server: it does not watch a cluster API
  or answer DNS queries. The record cache, helpers and nanny are the parts
  such a server uses, and `e2e_kubedns.KubeDNS` expects a separate
  kube-dns binary at `bin/amd64/kube-dns` under the framework's base
  directory.

## Tests

The test suite uses pytest; install the package with its `test` extra to
get it.