from . import cluster, serve

__all__ = ['cluster', 'serve']
