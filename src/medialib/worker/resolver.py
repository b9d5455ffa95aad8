"""Artist, Release and Cluster resolution from parsed tags.

Resolution rules:
- A MusicBrainz ID is authoritative: the entity carrying that ID is reused
  (or created), whatever name the file spells.
- Without an ID, a same-named entity is reused only if it has no ID itself,
  so an untagged file never merges into an ID-tagged entity.
- Without either, the "<None>" sentinel is used.

All lookups and inserts run inside the caller's session/transaction. Callers
syncing files concurrently must serialize the whole write transaction,
otherwise two transactions can each create the same entity.
"""

from typing import Iterable, List, Optional, Type, TypeVar, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medialib.core.models import GENRE_CLUSTER, NONE_NAME, Artist, Cluster, Release

Entity = TypeVar("Entity", Artist, Release)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


class EntityResolver:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve_artist(self, name: Optional[str], musicbrainz_id: Optional[str]) -> Artist:
        return await self._resolve(Artist, name, musicbrainz_id)

    async def resolve_release(self, name: Optional[str], musicbrainz_id: Optional[str]) -> Release:
        return await self._resolve(Release, name, musicbrainz_id)

    async def none_artist(self) -> Artist:
        return await self._none(Artist)

    async def none_release(self) -> Release:
        return await self._none(Release)

    async def _resolve(
        self, model: Type[Entity], name: Optional[str], musicbrainz_id: Optional[str]
    ) -> Entity:
        name = _clean(name)
        musicbrainz_id = _clean(musicbrainz_id)

        if musicbrainz_id:
            entity = await self.session.scalar(
                select(model).where(model.musicbrainz_id == musicbrainz_id)
            )
            if entity is None:
                entity = model(name=name, musicbrainz_id=musicbrainz_id)
                await self._add(entity)
            return entity

        # Fall back on the name (collisions may occur)
        if name:
            entity = await self.session.scalar(
                select(model)
                .where(model.name == name, model.musicbrainz_id.is_(None))
                .order_by(model.id)
                .limit(1)
            )
            if entity is None:
                entity = model(name=name)
                await self._add(entity)
            return entity

        return await self._none(model)

    async def _none(self, model: Type[Entity]) -> Entity:
        entity = await self.session.scalar(
            select(model)
            .where(model.name == NONE_NAME, model.musicbrainz_id.is_(None))
            .order_by(model.id)
            .limit(1)
        )
        if entity is None:
            entity = model(name=NONE_NAME)
            await self._add(entity)
        return entity

    async def resolve_clusters(
        self, names: Iterable[str], cluster_type: str = GENRE_CLUSTER
    ) -> List[Cluster]:
        """Lookup-or-create one cluster per distinct name; sentinel if none."""
        clusters: List[Cluster] = []
        for name in dict.fromkeys(_clean(n) for n in names):
            # A tag spelling the placeholder name is no genre at all
            if not name or name == NONE_NAME:
                continue
            clusters.append(await self._cluster(cluster_type, name))

        if not clusters:
            clusters.append(await self.none_cluster(cluster_type))
        return clusters

    async def none_cluster(self, cluster_type: str = GENRE_CLUSTER) -> Cluster:
        return await self._cluster(cluster_type, NONE_NAME)

    async def _cluster(self, cluster_type: str, name: str) -> Cluster:
        cluster = await self.session.scalar(
            select(Cluster).where(Cluster.type == cluster_type, Cluster.name == name)
        )
        if cluster is None:
            cluster = Cluster(type=cluster_type, name=name)
            await self._add(cluster)
        return cluster

    async def _add(self, entity: Union[Artist, Release, Cluster]) -> None:
        self.session.add(entity)
        await self.session.flush()
