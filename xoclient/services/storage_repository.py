from typing import Any, List, Optional

from ..context import Context
from ..errors import XOError
from ..models import QueryOptions, SRFilter, StorageRepository
from ..paths import build_filter_from_model
from .base import ResourceService, require_id

SR_PATH_PREFIX = '/rest/v0/srs/'


class StorageRepositoryService(ResourceService):
    resource = 'srs'
    model = StorageRepository
    object_type = 'storage repository'

    def list(self, limit=0, filter=None, options: Optional[QueryOptions] = None,
             ctx: Optional[Context] = None) -> List[StorageRepository]:
        """
        List storage repositories.

        :param filter: Filter string or an SRFilter
        """
        if isinstance(filter, SRFilter):
            filter = build_filter_from_model(filter)
        return super().list(limit, filter, options, ctx)

    def _list(self, endpoint, options, ctx):
        try:
            entries = self.rest.get(endpoint, options.to_params(), result_type=List[Any], ctx=ctx) or []
        except XOError as e:
            self.log.error(f"Failed to list storage repositories: {e}")
            raise
        srs = []
        for entry in entries:
            if isinstance(entry, str):
                if not entry.startswith(SR_PATH_PREFIX) or entry == SR_PATH_PREFIX:
                    self.log.warning(f"Skipping invalid storage repository path: {entry}")
                    continue
                srs.append(self.get_by_id(entry[len(SR_PATH_PREFIX):], ctx=ctx))
            else:
                srs.append(StorageRepository.model_validate(entry))
        self.log.debug(f"Retrieved {len(srs)} storage repositories")
        return srs

    def list_by_pool(self, pool_id, limit=0, ctx: Optional[Context] = None) -> List[StorageRepository]:
        pool_id = require_id(pool_id, "pool ID")
        return self.list(limit, build_filter_from_model(SRFilter(pool_id=pool_id)), ctx=ctx)
