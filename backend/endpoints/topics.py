#######################
# IMPORTS
#######################
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.database import RecordStore, TopicStats, get_store
from backend.exports import Slide, parse_slides

router = APIRouter()


#######################
# CRUD ENDPOINTS
#######################


@router.get("/topics", tags=["Topics"])
async def list_topics_endpoint(
    limit: int = Query(default=50, ge=1, le=500),
    q: Optional[str] = Query(default=None, description="Case-insensitive topic search"),
    subject: Optional[str] = None,
    store: RecordStore = Depends(get_store),
):
    """List stored records, most recent first."""
    topics = store.list(limit=limit, query=q, subject=subject)
    return {"success": True, "data": topics, "count": len(topics)}


@router.get("/topics/stats", response_model=TopicStats, tags=["Topics"])
async def topic_stats_endpoint(store: RecordStore = Depends(get_store)):
    """Counts of stored records by difficulty and content kind."""
    return store.stats()


@router.get("/topics/{topic_id}", tags=["Topics"])
async def get_topic_endpoint(topic_id: str, store: RecordStore = Depends(get_store)):
    record = store.get(topic_id)
    if not record:
        raise HTTPException(status_code=404, detail="Topic not found")
    return {"success": True, "data": record}


@router.get("/topics/{topic_id}/slides", response_model=List[Slide], tags=["Topics"])
async def get_topic_slides_endpoint(topic_id: str, store: RecordStore = Depends(get_store)):
    """The record's slide markdown parsed into individual slides."""
    record = store.get(topic_id)
    if not record:
        raise HTTPException(status_code=404, detail="Topic not found")
    return parse_slides(record.slides or "")


@router.delete("/topics/{topic_id}", tags=["Topics"])
async def delete_topic_endpoint(topic_id: str, store: RecordStore = Depends(get_store)):
    if not store.delete(topic_id):
        raise HTTPException(status_code=404, detail="Topic not found")
    return {"success": True, "message": "Topic deleted successfully"}
