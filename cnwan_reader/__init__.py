"""Turn services in AWS Cloud Map or etcd that carry given metadata keys into service events."""

__version__ = "0.5.0"

__all__ = [
    "cloudmap",
    "configuration",
    "etcd_utils",
    "etcd_watcher",
    "models",
    "version",
]