"""
ospfgraph - OSPF Topology Analytics.

Turns a weighted graph of OSPF routers and links into path listings,
redundancy and health scores, bottleneck reports, country-to-country
traffic matrices and what-if traffic impact predictions.

License: MIT
"""

__version__ = "0.1.0"
