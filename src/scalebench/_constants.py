"""Shared constants for scalebench."""

# Namespace holding the Machine API objects (MachineSet, Machine, MachineAutoscaler)
MACHINE_NAMESPACE = "openshift-machine-api"

# Machine API group/version served by the machine-api-operator
MACHINE_API_GROUP = "machine.openshift.io"
MACHINE_API_VERSION = "v1beta1"

# Role label carried by MachineSets and Machines
MACHINE_ROLE_LABEL = "machine.openshift.io/cluster-api-machine-role"

# Label that managed (ROSA classic) clusters put on worker MachineSets
WORKER_POOL_LABEL = "hive.openshift.io/machine-pool=worker"

# Cluster API (hosted control plane) resources on the management cluster
CAPI_GROUP = "cluster.x-k8s.io"
CAPI_VERSION = "v1beta1"
CAPI_CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"
CAPI_AWS_GROUP = "infrastructure.cluster.x-k8s.io"
CAPI_AWS_VERSION = "v1beta2"

# Autoscaler resources
AUTOSCALING_GROUP = "autoscaling.openshift.io"
MACHINE_AUTOSCALER_VERSION = "v1beta1"
CLUSTER_AUTOSCALER_VERSION = "v1"

# Indexing names
JOB_NAME = "workers-scale"
NODE_READY_LATENCY_MEASUREMENT = "nodeReadyLatencyMeasurement"
NODE_READY_LATENCY_QUANTILES_MEASUREMENT = "nodeReadyLatencyQuantilesMeasurement"

# Default local indexing directory; the run UUID is appended when unchanged
DEFAULT_METRICS_DIRECTORY = "collected-metrics"

# Default config file name for auto-discovery
DEFAULT_CONFIG = "scalebench.yaml"
