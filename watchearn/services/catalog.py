"""Admin-authored catalog: plans, videos and payment channels."""

from watchearn.core.audit import log_event
from watchearn.core.exceptions import NotFoundError, ValidationError
from watchearn.core.logging import get_logger
from watchearn.core.pagination import paginate
from watchearn.core.security import ensure_admin
from watchearn.db.base import Datastore, UnitOfWork
from watchearn.models import Account, ChannelDirection, PaymentMethod, PlanDefinition, Video
from watchearn.services.commands import (
    PaymentMethodCommand,
    PaymentMethodUpdateCommand,
    PlanCommand,
    PlanUpdateCommand,
    VideoCommand,
)
from watchearn.storage.media import MediaStore

log = get_logger(__name__)


class CatalogService:
    def __init__(self, datastore: Datastore, media: MediaStore) -> None:
        self.datastore = datastore
        self.media = media

    # -- plans --

    async def create_plan(self, admin: Account, cmd: PlanCommand) -> PlanDefinition:
        ensure_admin(admin)
        plan = PlanDefinition(**cmd.model_dump())
        plan.total_reward = plan.compute_total_reward()

        async def _create(uow: UnitOfWork) -> PlanDefinition:
            await uow.plans.insert(plan)
            await log_event(uow, admin.id, "plan_created", "plan", plan.id, {"name": plan.name, "cost": str(plan.cost)})
            return plan

        plan = await self.datastore.run(_create)
        log.info("plan_created", plan_id=plan.id, name=plan.name)
        return plan

    async def update_plan(self, admin: Account, plan_id: str, cmd: PlanUpdateCommand) -> PlanDefinition:
        """Edits apply to future purchases only; active plans keep their snapshot."""
        ensure_admin(admin)
        changes = cmd.model_dump(exclude_none=True)
        if not changes:
            raise ValidationError("Nothing to update")

        async def _update(uow: UnitOfWork) -> PlanDefinition:
            plan = await uow.plans.get(plan_id)
            if not plan:
                raise NotFoundError("Plan not found")
            for key, value in changes.items():
                setattr(plan, key, value)
            plan.total_reward = plan.compute_total_reward()
            await uow.plans.save(plan)
            await log_event(uow, admin.id, "plan_updated", "plan", plan.id, {k: str(v) for k, v in changes.items()})
            return plan

        plan = await self.datastore.run(_update)
        log.info("plan_updated", plan_id=plan.id, fields=sorted(changes))
        return plan

    async def list_plans(self, include_inactive: bool = False) -> list[PlanDefinition]:
        filters = {} if include_inactive else {"is_active": True}

        async def _read(uow: UnitOfWork) -> list[PlanDefinition]:
            return await uow.plans.find(sort="cost", **filters)

        return await self.datastore.run(_read)

    async def get_plan(self, plan_id: str) -> PlanDefinition:
        async def _read(uow: UnitOfWork) -> PlanDefinition | None:
            return await uow.plans.get(plan_id)

        plan = await self.datastore.run(_read)
        if not plan:
            raise NotFoundError("Plan not found")
        return plan

    # -- videos --

    async def add_video(
        self,
        admin: Account,
        cmd: VideoCommand,
        data: bytes | None = None,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> Video:
        """Either a hosted URL or an uploaded file; an upload wins when both are given."""
        ensure_admin(admin)
        storage_key = None
        if data:
            stored = await self.media.store(data, "videos", "video", filename or "", content_type)
            url, storage_key = stored.url, stored.key
        elif cmd.url:
            url = cmd.url.strip()
        else:
            raise ValidationError("Provide a video URL or upload a file")

        video = Video(
            title=cmd.title,
            description=cmd.description,
            url=url,
            storage_key=storage_key,
            duration_seconds=cmd.duration_seconds,
            uploaded_by=admin.id,
        )

        async def _create(uow: UnitOfWork) -> Video:
            await uow.videos.insert(video)
            await log_event(uow, admin.id, "video_added", "video", video.id, {"title": video.title})
            return video

        try:
            video = await self.datastore.run(_create)
        except Exception:
            if storage_key:
                await self.media.remove(storage_key)
            raise
        log.info("video_added", video_id=video.id, uploaded=storage_key is not None)
        return video

    async def list_videos(
        self,
        include_inactive: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Video], int]:
        limit, offset = paginate(limit, offset)
        filters = {} if include_inactive else {"is_active": True}

        async def _read(uow: UnitOfWork) -> tuple[list[Video], int]:
            items = await uow.videos.find(sort="-created_at", limit=limit, offset=offset, **filters)
            return items, await uow.videos.count(**filters)

        return await self.datastore.run(_read)

    async def deactivate_video(self, admin: Account, video_id: str) -> Video:
        """Soft delete: ledger entries and watch history keep pointing at it."""
        ensure_admin(admin)

        async def _deactivate(uow: UnitOfWork) -> Video:
            video = await uow.videos.get(video_id)
            if not video:
                raise NotFoundError("Video not found")
            video.is_active = False
            await uow.videos.save(video)
            await log_event(uow, admin.id, "video_deactivated", "video", video.id)
            return video

        video = await self.datastore.run(_deactivate)
        log.info("video_deactivated", video_id=video_id)
        return video

    # -- payment methods --

    async def create_payment_method(self, admin: Account, cmd: PaymentMethodCommand) -> PaymentMethod:
        ensure_admin(admin)
        method = PaymentMethod(**cmd.model_dump())

        async def _create(uow: UnitOfWork) -> PaymentMethod:
            await uow.payment_methods.insert(method)
            await log_event(uow, admin.id, "payment_method_created", "payment_method", method.id, {"name": method.name})
            return method

        return await self.datastore.run(_create)

    async def update_payment_method(
        self, admin: Account, method_id: str, cmd: PaymentMethodUpdateCommand
    ) -> PaymentMethod:
        ensure_admin(admin)
        changes = cmd.model_dump(exclude_none=True)
        if not changes:
            raise ValidationError("Nothing to update")

        async def _update(uow: UnitOfWork) -> PaymentMethod:
            method = await uow.payment_methods.get(method_id)
            if not method:
                raise NotFoundError("Payment method not found")
            for key, value in changes.items():
                setattr(method, key, value)
            await uow.payment_methods.save(method)
            await log_event(
                uow, admin.id, "payment_method_updated", "payment_method", method.id, {k: str(v) for k, v in changes.items()}
            )
            return method

        return await self.datastore.run(_update)

    async def list_payment_methods(
        self,
        direction: ChannelDirection | None = None,
        include_inactive: bool = False,
    ) -> list[PaymentMethod]:
        async def _read(uow: UnitOfWork) -> list[PaymentMethod]:
            return await uow.payment_methods.find(sort="name")

        methods = await self.datastore.run(_read)
        if not include_inactive:
            methods = [m for m in methods if m.is_active]
        if direction is not None:
            methods = [m for m in methods if m.direction in (direction, ChannelDirection.BOTH)]
        return methods
