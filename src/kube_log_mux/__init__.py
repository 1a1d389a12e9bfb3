"""Tail logs from several Kubernetes contexts as one interleaved stream."""

APP_NAME = "kube-log-mux"
__version__ = "0.1.0"
