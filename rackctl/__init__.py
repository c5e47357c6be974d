"""rackctl - provision and validate a fixed-topology Kubernetes cluster over SSH."""

__version__ = "0.1.0"
