from ..models import Host
from .base import ResourceService


class HostService(ResourceService):
    """Hosts are read-only over REST apart from their tags."""
    resource = 'hosts'
    model = Host
    object_type = 'host'
