from typing import Optional

from ..context import Context
from ..models import Network
from .base import ResourceService


class NetworkService(ResourceService):
    resource = 'networks'
    model = Network
    object_type = 'network'

    def delete(self, network_id, ctx: Optional[Context] = None):
        self._delete(network_id, ctx)
