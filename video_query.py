"""
Video listing query builder.

The listing is one aggregation pipeline:

    $match (published, optional owner)
    $addFields title/description match counts   (only with a search query)
    $sort                                       (query | sortBy | newest first)
    $lookup owner + $unwind
    $project public fields

and is paginated with a `$count` run plus a `$skip`/`$limit` run.
"""

import math
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.collection import Collection

from responses import ApiError

STOP_WORDS = frozenset("""
a about above after again against all am an and any are as at be because been
before being below between both but by can could did do does doing down during
each few for from further had has have having he her here hers herself him
himself his how i if in into is it its itself just me more most my myself no nor
not now of off on once only or other our ours ourselves out over own same she
should so some such than that the their theirs them themselves then there these
they this those through to too under until up very was we were what when where
which while who whom why will with you your yours yourself yourselves
""".split())

SORTABLE_FIELDS = {
    "createdAt": "created_at",
    "created_at": "created_at",
    "updatedAt": "updated_at",
    "updated_at": "updated_at",
    "views": "views",
    "duration": "duration",
    "title": "title",
}

OWNER_FIELDS = ("username", "full_name", "avatar")

VIDEO_FIELDS = (
    "video_file",
    "thumbnail",
    "title",
    "description",
    "duration",
    "views",
    "is_published",
    "created_at",
    "updated_at",
)


def normalize_query(query: Optional[str]) -> List[str]:
    words = []
    for word in (query or "").lower().split():
        if word not in STOP_WORDS and word not in words:
            words.append(word)
    return words


def parse_sort_type(sort_type: Optional[str]) -> int:
    value = (sort_type or "desc").strip().lower()
    if value in ("asc", "ascending", "1"):
        return 1
    if value in ("desc", "descending", "-1"):
        return -1
    raise ApiError(400, "sortType must be asc or desc")


def _match_count(words: List[str], field: str) -> dict:
    # number of query words occurring as whole (space separated) words in the field
    return {
        "$size": {
            "$filter": {
                "input": words,
                "as": "word",
                "cond": {
                    "$in": ["$$word", {"$split": [{"$toLower": f"${field}"}, " "]}],
                },
            }
        }
    }


def owner_lookup_stages() -> List[dict]:
    return [
        {
            "$lookup": {
                "from": "users",
                "localField": "owner",
                "foreignField": "_id",
                "as": "owner",
            }
        },
        {"$unwind": "$owner"},
    ]


def build_listing_pipeline(
    query: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_type: Optional[str] = None,
    user_id: Optional[str] = None,
) -> List[dict]:
    match: Dict[str, object] = {"is_published": True}
    if user_id and ObjectId.is_valid(user_id):
        match["owner"] = ObjectId(user_id)

    pipeline: List[dict] = [{"$match": match}]

    words = normalize_query(query)
    projection = {field: 1 for field in VIDEO_FIELDS}
    projection.update({f"owner.{field}": 1 for field in ("_id",) + OWNER_FIELDS})

    if query and query.strip():
        pipeline.append({
            "$addFields": {
                "title_match_count": _match_count(words, "title"),
                "description_match_count": _match_count(words, "description"),
            }
        })
        projection["title_match_count"] = 1
        projection["description_match_count"] = 1
        sort = {"title_match_count": -1}
    elif sort_by:
        field = SORTABLE_FIELDS.get(sort_by)
        if not field:
            raise ApiError(400, f"Cannot sort by '{sort_by}'")
        sort = {field: parse_sort_type(sort_type)}
    else:
        sort = {"created_at": -1}

    # _id breaks ties so pages stay stable across the two paging runs
    sort["_id"] = -1
    pipeline.append({"$sort": sort})
    pipeline.extend(owner_lookup_stages())
    pipeline.append({"$project": projection})
    return pipeline


def paging_info(total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if total else 0
    has_prev = page > 1
    has_next = page < total_pages
    return {
        "totalDocs": total,
        "limit": limit,
        "page": page,
        "totalPages": total_pages,
        "pagingCounter": (page - 1) * limit + 1,
        "hasPrevPage": has_prev,
        "hasNextPage": has_next,
        "prevPage": page - 1 if has_prev else None,
        "nextPage": page + 1 if has_next else None,
    }


def paginate(collection: Collection, pipeline: List[dict], page: int = 1, limit: int = 10) -> Tuple[List[dict], dict]:
    if page < 1 or limit < 1:
        raise ApiError(400, "page and limit must be positive integers")
    counted = list(collection.aggregate(pipeline + [{"$count": "total"}]))
    total = counted[0]["total"] if counted else 0
    docs = []
    if total:
        docs = list(collection.aggregate(pipeline + [{"$skip": (page - 1) * limit}, {"$limit": limit}]))
    return docs, paging_info(total, page, limit)
