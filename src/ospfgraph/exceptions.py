"""Exception types raised at the ospfgraph input boundaries."""


class OspfGraphError(ValueError):
    """Base class for ospfgraph input errors."""


class TopologyError(OspfGraphError):
    """A topology document could not be decoded into nodes and links."""


class MutationError(OspfGraphError):
    """A link mutation does not apply to the topology it targets."""
