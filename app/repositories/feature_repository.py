"""
Repository for Feature database operations

Every statement that mutates a row of `features` also maintains the FTS5
index (db.SEARCH_INDEX) in the same session, so the index can never drift
from the table.
"""

from sqlalchemy import delete, distinct, func, literal_column, select
from sqlalchemy import insert as sa_insert
from sqlalchemy.dialects.sqlite import insert

from db import SEARCH_INDEX
from constants import (
    ASSOCIATION_CLOUD_INSTANCE,
    ASSOCIATION_PLATFORM,
    ASSOCIATION_PRODUCT,
    ASSOCIATION_RELEASE_RING,
)
from models.feature import (
    Feature,
    FeatureAvailability,
    FeatureCloudInstance,
    FeaturePlatform,
    FeatureProduct,
    FeatureReleaseRing,
)
from utils import dedupe

# kind -> (model, tag column)
ASSOCIATION_TABLES = {
    ASSOCIATION_PRODUCT: (FeatureProduct, FeatureProduct.product),
    ASSOCIATION_PLATFORM: (FeaturePlatform, FeaturePlatform.platform),
    ASSOCIATION_CLOUD_INSTANCE: (FeatureCloudInstance, FeatureCloudInstance.cloud_instance),
    ASSOCIATION_RELEASE_RING: (FeatureReleaseRing, FeatureReleaseRing.release_ring),
}

SCALAR_COLUMNS = [
    "title",
    "description",
    "status",
    "general_availability_date",
    "preview_availability_date",
    "created",
    "modified",
]


def _association_table(kind):
    try:
        return ASSOCIATION_TABLES[kind]
    except KeyError:
        raise ValueError(f"Unknown association kind: {kind}")


class FeatureRepository:
    """Repository for Feature database operations"""

    @staticmethod
    def upsert(session, feature):
        """Insert or overwrite every scalar field of a feature, then re-index it"""
        values = {"id": feature.id}
        values.update({name: getattr(feature, name) for name in SCALAR_COLUMNS})

        stmt = insert(Feature).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Feature.id],
            set_={name: stmt.excluded[name] for name in SCALAR_COLUMNS},
        )
        session.execute(stmt)

        session.execute(delete(SEARCH_INDEX).where(SEARCH_INDEX.c.rowid == feature.id))
        session.execute(
            sa_insert(SEARCH_INDEX).values(rowid=feature.id, title=feature.title, description=feature.description)
        )

    @staticmethod
    def replace_associations(session, feature_id, kind, tags):
        """Delete every tag of `kind` for the feature, then insert the given set"""
        model, tag_column = _association_table(kind)
        session.execute(delete(model).where(model.feature_id == feature_id))

        rows = [{"feature_id": feature_id, tag_column.key: tag} for tag in dedupe(tags)]
        if rows:
            session.execute(sa_insert(model), rows)

    @staticmethod
    def replace_availabilities(session, feature_id, availabilities):
        session.execute(delete(FeatureAvailability).where(FeatureAvailability.feature_id == feature_id))

        rows = [
            {"feature_id": feature_id, "ring": a.ring, "year": a.year, "month": a.month}
            for a in availabilities or []
        ]
        if rows:
            session.execute(sa_insert(FeatureAvailability), rows)

    @staticmethod
    def delete(session, feature_id):
        """Remove a feature; associations go through ON DELETE CASCADE"""
        session.execute(delete(SEARCH_INDEX).where(SEARCH_INDEX.c.rowid == feature_id))
        result = session.execute(delete(Feature).where(Feature.id == feature_id))
        return result.rowcount > 0

    @staticmethod
    def get_by_id(session, feature_id):
        """Full feature with all associations and availability entries, or None"""
        feature = session.get(Feature, feature_id)
        if not feature:
            return None

        return {
            "id": feature.id,
            "title": feature.title,
            "description": feature.description,
            "status": feature.status,
            "general_availability_date": feature.general_availability_date,
            "preview_availability_date": feature.preview_availability_date,
            "created": feature.created,
            "modified": feature.modified,
            "products": [p.product for p in feature.products],
            "platforms": [p.platform for p in feature.platforms],
            "cloud_instances": [c.cloud_instance for c in feature.cloud_instances],
            "release_rings": [r.release_ring for r in feature.release_rings],
            "availabilities": [
                {"ring": a.ring, "year": a.year, "month": a.month} for a in feature.availabilities
            ],
        }

    @staticmethod
    def get_associations(session, feature_id, kind):
        model, tag_column = _association_table(kind)
        return list(session.scalars(select(tag_column).where(model.feature_id == feature_id).order_by(tag_column)))

    @staticmethod
    def get_tags_for(session, kind, feature_ids):
        """Map feature id -> sorted tags of `kind` for a page of results (one query)"""
        mapping = {feature_id: [] for feature_id in feature_ids}
        if not feature_ids:
            return mapping

        model, tag_column = _association_table(kind)
        rows = session.execute(
            select(model.feature_id, tag_column).where(model.feature_id.in_(feature_ids)).order_by(tag_column)
        )
        for feature_id, tag in rows:
            mapping[feature_id].append(tag)
        return mapping

    @staticmethod
    def search(session, criteria):
        """
        Execute a composed SearchCriteria.

        Returns (rows, total_count) where total_count ignores limit/offset and
        rows are ordered most recently modified first.
        """
        conditions = []

        if criteria.match_expression:
            matching_ids = select(SEARCH_INDEX.c.rowid).where(
                literal_column("features_fts").op("MATCH")(criteria.match_expression)
            )
            conditions.append(Feature.id.in_(matching_ids))

        if criteria.status:
            conditions.append(Feature.status == criteria.status)

        if criteria.date_from:
            conditions.append(Feature.general_availability_date >= criteria.date_from)
        if criteria.date_to:
            conditions.append(Feature.general_availability_date <= criteria.date_to)

        for kind, tags in (
            (ASSOCIATION_PRODUCT, criteria.products),
            (ASSOCIATION_PLATFORM, criteria.platforms),
            (ASSOCIATION_CLOUD_INSTANCE, criteria.cloud_instances),
        ):
            if tags:
                model, tag_column = _association_table(kind)
                conditions.append(Feature.id.in_(select(model.feature_id).where(tag_column.in_(tags))))

        count_stmt = select(func.count()).select_from(Feature)
        rows_stmt = select(
            Feature.id,
            Feature.title,
            Feature.description,
            Feature.status,
            Feature.general_availability_date,
            Feature.preview_availability_date,
            Feature.modified,
        )
        for condition in conditions:
            count_stmt = count_stmt.where(condition)
            rows_stmt = rows_stmt.where(condition)

        rows_stmt = (
            rows_stmt.order_by(Feature.modified.desc(), Feature.id.desc())
            .limit(criteria.limit)
            .offset(criteria.offset)
        )

        total_count = session.scalar(count_stmt) or 0
        rows = [dict(row._mapping) for row in session.execute(rows_stmt)]

        ids = [row["id"] for row in rows]
        products = FeatureRepository.get_tags_for(session, ASSOCIATION_PRODUCT, ids)
        platforms = FeatureRepository.get_tags_for(session, ASSOCIATION_PLATFORM, ids)
        for row in rows:
            row["products"] = products[row["id"]]
            row["platforms"] = platforms[row["id"]]

        return rows, total_count

    @staticmethod
    def count(session):
        """Count total Feature records"""
        return session.scalar(select(func.count()).select_from(Feature)) or 0

    @staticmethod
    def get_last_modified(session):
        return session.scalar(select(func.max(Feature.modified)))

    @staticmethod
    def get_distinct(session, column):
        return list(session.scalars(select(distinct(column)).order_by(column)))

    @staticmethod
    def count_distinct(session, column):
        return session.scalar(select(func.count(distinct(column)))) or 0

    @staticmethod
    def count_indexed(session):
        return session.scalar(select(func.count()).select_from(SEARCH_INDEX)) or 0

    @staticmethod
    def rebuild_search_index(session):
        session.execute(delete(SEARCH_INDEX))
        session.execute(
            sa_insert(SEARCH_INDEX).from_select(
                ["rowid", "title", "description"],
                select(Feature.id, Feature.title, Feature.description),
            )
        )
