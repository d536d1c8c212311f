"""Constants for the Hetzner Cluster Operator."""

import os

# API Group
API_GROUP = "infrastructure.cluster.x-k8s.io"
API_VERSION = "v1beta1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_HETZNER_CLUSTER = "HetznerCluster"

# Finalizers
FINALIZER = "hetznercluster.infrastructure.cluster.x-k8s.io"

# Controller name used in structured logs
CONTROLLER_NAME = "hetzner-cluster-operator"

# Ownership labels
CLUSTER_TAG_KEY_PREFIX = "caph-cluster-"
RESOURCE_LIFECYCLE_OWNED = "owned"

# Condition Types
COND_READY = "Ready"
COND_HCLOUD_TOKEN_AVAILABLE = "HCloudTokenAvailable"
COND_HETZNER_API_REACHABLE = "HetznerAPIReachable"
COND_NETWORK_READY = "NetworkReady"
COND_LOAD_BALANCER_READY = "LoadBalancerReady"
COND_PLACEMENT_GROUPS_SYNCED = "PlacementGroupsSynced"
COND_CONTROL_PLANE_ENDPOINT_SET = "ControlPlaneEndpointSet"
COND_SPEC_VALID = "SpecValid"

# Condition Statuses
STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"

# Condition Severities
SEVERITY_ERROR = "Error"
SEVERITY_WARNING = "Warning"
SEVERITY_INFO = "Info"
SEVERITY_NONE = ""

# Condition Reasons
REASON_RATE_LIMIT_EXCEEDED = "RateLimitExceeded"
REASON_HCLOUD_API_UNREACHABLE = "HCloudAPIUnreachable"
REASON_HETZNER_SECRET_UNREACHABLE = "HetznerSecretUnreachable"
REASON_HCLOUD_CREDENTIALS_INVALID = "HCloudCredentialsInvalid"
REASON_LOAD_BALANCER_FAILED_TO_OWN = "LoadBalancerFailedToOwn"
REASON_LOAD_BALANCER_DISABLED = "LoadBalancerDisabled"
REASON_LOAD_BALANCER_UPDATE_FAILED = "LoadBalancerUpdateFailed"
REASON_LOAD_BALANCER_SERVICE_SYNC_FAILED = "LoadBalancerServiceSyncFailed"
REASON_NETWORK_DISABLED = "NetworkDisabled"
REASON_MULTIPLE_NETWORKS_FOUND = "MultipleNetworksFound"
REASON_NETWORK_RECONCILE_FAILED = "NetworkReconcileFailed"
REASON_PLACEMENT_GROUPS_SYNC_FAILED = "PlacementGroupsSyncFailed"
REASON_SERVER_LIST_FAILED = "ServerListFailed"
REASON_MISSING_CONTROL_PLANE_ENDPOINT = "MissingControlPlaneEndpoint"
REASON_INVALID_SPEC = "InvalidSpec"
REASON_DELETING = "Deleting"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_RATE_LIMITED = "RateLimited"
EVENT_REASON_LOAD_BALANCER_CREATED = "LoadBalancerCreated"
EVENT_REASON_LOAD_BALANCER_ADOPTED = "LoadBalancerAdopted"
EVENT_REASON_LOAD_BALANCER_UPDATED = "LoadBalancerUpdated"
EVENT_REASON_LOAD_BALANCER_RELEASED = "LoadBalancerReleased"
EVENT_REASON_LOAD_BALANCER_DELETED = "LoadBalancerDeleted"
EVENT_REASON_PLACEMENT_GROUP_CREATED = "PlacementGroupCreated"
EVENT_REASON_PLACEMENT_GROUP_DELETED = "PlacementGroupDeleted"
EVENT_REASON_NETWORK_CREATED = "NetworkCreated"
EVENT_REASON_NETWORK_DELETED = "NetworkDeleted"

# Allowed values
KNOWN_REGIONS = frozenset({"fsn1", "nbg1", "hel1", "ash", "hil", "sin"})
KNOWN_NETWORK_ZONES = frozenset({"eu-central", "us-east", "us-west", "ap-southeast"})
PLACEMENT_GROUP_TYPES = frozenset({"spread"})
LOAD_BALANCER_ALGORITHMS = frozenset({"round_robin", "least_connections"})
LOAD_BALANCER_PROTOCOLS = frozenset({"tcp", "http", "https"})

# Defaults
DEFAULT_LOAD_BALANCER_TYPE = "lb11"
DEFAULT_LOAD_BALANCER_ALGORITHM = "least_connections"
DEFAULT_LOAD_BALANCER_PORT = 6443
DEFAULT_NETWORK_CIDR_BLOCK = "10.0.0.0/16"
DEFAULT_SUBNET_CIDR_BLOCK = "10.0.0.0/24"
DEFAULT_NETWORK_ZONE = "eu-central"
DEFAULT_SECRET_NAME = "hetzner"
DEFAULT_SECRET_TOKEN_KEY = "hcloud"

# Timing (seconds)
RATE_LIMIT_WAIT_SECONDS = float(os.getenv("RATE_LIMIT_WAIT_SECONDS", "300"))
REQUEUE_SECONDS = float(os.getenv("REQUEUE_SECONDS", "30"))
RESYNC_INTERVAL_SECONDS = float(os.getenv("RESYNC_INTERVAL_SECONDS", "180"))
