from typing import Any

from hbg_hub import Hub, HubContext, hub_method
from pydantic import TypeAdapter

from .schemas import DistributionProgress
from .service import DistributionsService, distribution_progress
from .worker import distribution_group

_ids_adapter = TypeAdapter(list[int])
_id_adapter = TypeAdapter(int)


class EmailerHub(Hub):
    """
    Live progress of distributions.

    Connections join their user group on connect and the group of every
    distribution they track; the worker pushes `DistributionUpdated` there.
    """

    name = "emailer"

    async def _track(self, ctx: HubContext, distribution_id: int) -> DistributionProgress:
        await DistributionsService(ctx.db, ctx.user_id).get(distribution_id)
        ctx.manager.add_to_group(ctx.connection_id, distribution_group(distribution_id))
        return await distribution_progress(ctx.db, distribution_id)

    @hub_method("TrackDistribution")
    async def track_distribution(self, ctx: HubContext, distribution_id: Any):
        """Join the distribution group and return its current progress."""
        return await self._track(ctx, _id_adapter.validate_python(distribution_id))

    @hub_method("TrackDistributions")
    async def track_distributions(self, ctx: HubContext, distribution_ids: Any):
        return [
            await self._track(ctx, distribution_id)
            for distribution_id in _ids_adapter.validate_python(distribution_ids)
        ]

    @hub_method("UntrackDistribution")
    async def untrack_distribution(self, ctx: HubContext, distribution_id: Any) -> None:
        ctx.manager.remove_from_group(
            ctx.connection_id, distribution_group(_id_adapter.validate_python(distribution_id))
        )
