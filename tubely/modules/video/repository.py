"""Video repository for database operations."""

import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.modules.video.models import Video


class VideoRepository:
    """Repository for Video CRUD operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        user_id: uuid.UUID,
        title: str,
        description: str = "",
    ) -> Video:
        """Create a new video record without any media attached.

        Args:
            user_id: Owning user UUID
            title: Video title
            description: Free-form description

        Returns:
            Video: Created video instance
        """
        video = Video(user_id=user_id, title=title, description=description)
        self.session.add(video)
        await self.session.flush()
        return video

    async def get_by_id(self, video_id: uuid.UUID) -> Optional[Video]:
        """Get video by ID, or None if it does not exist."""
        result = await self.session.execute(select(Video).where(Video.id == video_id))
        return result.scalar_one_or_none()

    async def list_by_user(
        self,
        user_id: uuid.UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Video]:
        """Get the videos owned by a user, newest first."""
        query = (
            select(Video)
            .where(Video.user_id == user_id)
            .order_by(Video.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update(self, video: Video, **fields: Any) -> Video:
        """Apply field changes to a video and flush them.

        Args:
            video: Video to update
            **fields: Column values to set

        Returns:
            Video: Updated video
        """
        for name, value in fields.items():
            if not hasattr(Video, name):
                raise AttributeError(f"Video has no field {name!r}")
            setattr(video, name, value)
        await self.session.flush()
        return video

    async def delete(self, video: Video) -> None:
        await self.session.delete(video)
        await self.session.flush()
