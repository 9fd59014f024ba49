"""
Asset handling: URL classification, resolution, download and re-hosting.

Import :class:`bc2notion.assets.resolver.AssetResolver` from its module;
this package namespace stays empty so that :mod:`bc2notion.assets.urls`
can be used by the parsers without pulling in the network layer.
"""
