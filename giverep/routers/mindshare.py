from typing import Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from giverep.auth.admin import require_admin
from giverep.core.logging import get_logger
from giverep.database import get_db
from giverep.models.mindshare import MindshareKeyword, MindshareProject
from giverep.models.project import LoyaltyProject
from giverep.schemas.mindshare_schema import (
    CalculateMetricsRequest,
    KeywordCreate,
    KeywordOut,
    KeywordUpdate,
    MindshareProjectCreate,
    MindshareProjectUpdate,
)
from giverep.services import mindshare as mindshare_service
from giverep.services.loyalty import get_user_project_tweets


logger = get_logger(__name__)

router = APIRouter(prefix="/api/mindshare", tags=["Mindshare"])


def _get_project(db: Session, project_id: int) -> MindshareProject:
    project = db.query(MindshareProject).get(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def _timeframe_for_days(days: int) -> str:
    if days <= 1:
        return "day"
    if days <= 14:
        return "week"
    return "month"


# ---------- Public reads ----------

@router.get("/projects")
def list_projects(
    timeframe: str = Query("week", pattern="^(day|week|month)$"),
    days: Optional[int] = Query(None, ge=1, le=365),
    tags: Optional[str] = None,
    db: Session = Depends(get_db),
):
    try:
        tag_ids = [int(t) for t in tags.split(",") if t.strip()] if tags else None
    except ValueError:
        raise HTTPException(status_code=400, detail="tags must be a comma separated list of integers")

    if days is not None:
        timeframe = _timeframe_for_days(days)
    return mindshare_service.get_all_projects_with_metrics(db, timeframe, days=days, tag_ids=tag_ids)


@router.get("/projects/{project_id}")
def get_project(project_id: int, days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    data = mindshare_service.project_to_dict(project)
    data["keywords"] = [KeywordOut.model_validate(k).model_dump() for k in project.keywords]
    return {
        "project": data,
        "timeSeries": mindshare_service.get_project_time_series(db, project.id, days),
    }


@router.get("/projects/{project_id}/tweets")
def get_project_tweets(
    project_id: int,
    days: int = Query(2, ge=1, le=365),
    limit: int = Query(50, ge=1, le=5000),
    sortBy: str = Query("views", pattern="^(views|recent)$"),
    include_all: bool = Query(False, alias="all"),
    db: Session = Depends(get_db),
):
    project = _get_project(db, project_id)
    tweets = mindshare_service.get_project_tweets(
        db, project.id, days=days, limit=limit, sort_by=sortBy, include_all=include_all
    )
    return {
        "project_id": project.id,
        "project_name": project.name,
        "tweet_count": len(tweets),
        "tweets": tweets,
    }


@router.get("/projects/{project_id}/top-tweet")
def get_top_tweet(project_id: int, days: int = Query(2, ge=1, le=365), db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    tweet = mindshare_service.get_top_tweet(db, project.id, days)
    if not tweet:
        raise HTTPException(status_code=404, detail="No tweets found for this project in the selected time period")
    return {"project_id": project.id, "project_name": project.name, "tweet": tweet}


@router.get("/projects/{project_id}/keywords")
def get_keywords(project_id: int, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    keywords = (
        db.query(MindshareKeyword)
        .filter(MindshareKeyword.project_id == project.id)
        .order_by(MindshareKeyword.created_at.desc())
        .all()
    )
    return {
        "project_id": project.id,
        "project_name": project.name,
        "keywords": [KeywordOut.model_validate(k).model_dump() for k in keywords],
    }


@router.get("/user-tweets/{handle}")
def get_user_tweets(handle: str, projectId: Optional[int] = None, db: Session = Depends(get_db)):
    if projectId is None:
        raise HTTPException(status_code=400, detail="Project ID is required")
    project = db.query(LoyaltyProject).get(projectId)
    if not project:
        raise HTTPException(status_code=404, detail="Loyalty project not found")
    return get_user_project_tweets(db, project, handle)


# ---------- Admin: projects ----------

@router.post("/projects", status_code=201, dependencies=[Depends(require_admin)])
def create_project(payload: MindshareProjectCreate, db: Session = Depends(get_db)):
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="Project name is required")
    data = payload.model_dump()
    if data.get("twitter_handle"):
        data["twitter_handle"] = data["twitter_handle"].strip().lstrip("@")
    project = mindshare_service.create_project(db, data)
    logger.info("Created mindshare project", extra={"project_id": project.id})
    return mindshare_service.project_to_dict(project)


@router.put("/projects/{project_id}", dependencies=[Depends(require_admin)])
def update_project(project_id: int, payload: MindshareProjectUpdate, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("twitter_handle"):
        data["twitter_handle"] = data["twitter_handle"].strip().lstrip("@")
    project = mindshare_service.update_project(db, project, data)
    return mindshare_service.project_to_dict(project)


@router.delete("/projects/{project_id}", dependencies=[Depends(require_admin)])
def delete_project(project_id: int, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    name = project.name
    db.delete(project)
    db.commit()
    return {"success": True, "message": f"Project {name} was successfully deleted"}


# ---------- Admin: keywords ----------

@router.post("/projects/{project_id}/keywords", status_code=201, dependencies=[Depends(require_admin)])
def add_keyword(project_id: int, payload: KeywordCreate, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    keyword_text = payload.keyword.strip()
    if not keyword_text:
        raise HTTPException(status_code=400, detail="Keyword is required")
    if mindshare_service.keyword_exists(db, project.id, keyword_text):
        raise HTTPException(status_code=409, detail="Keyword already exists for this project")

    keyword = MindshareKeyword(project_id=project.id, keyword=keyword_text)
    db.add(keyword)
    db.commit()
    db.refresh(keyword)
    return KeywordOut.model_validate(keyword)


@router.put("/keywords/{keyword_id}", response_model=KeywordOut, dependencies=[Depends(require_admin)])
def update_keyword(keyword_id: int, payload: KeywordUpdate, db: Session = Depends(get_db)):
    keyword = db.query(MindshareKeyword).get(keyword_id)
    if not keyword:
        raise HTTPException(status_code=404, detail="Keyword not found")
    if payload.keyword is not None:
        keyword.keyword = payload.keyword.strip()
    if payload.is_active is not None:
        keyword.is_active = payload.is_active
    db.commit()
    db.refresh(keyword)
    return keyword


@router.delete("/keywords/{keyword_id}", dependencies=[Depends(require_admin)])
def delete_keyword(keyword_id: int, db: Session = Depends(get_db)):
    keyword = db.query(MindshareKeyword).get(keyword_id)
    if not keyword:
        raise HTTPException(status_code=404, detail="Keyword not found")
    deleted = KeywordOut.model_validate(keyword).model_dump()
    db.delete(keyword)
    db.commit()
    return {
        "success": True,
        "message": f"Successfully deleted keyword '{deleted['keyword']}'",
        "deletedKeyword": deleted,
    }


# ---------- Admin: jobs ----------

@router.post("/collect-tweets", dependencies=[Depends(require_admin)])
def collect_all_tweets(days: int = Body(7, embed=True), db: Session = Depends(get_db)):
    if days < 1 or days > 30:
        raise HTTPException(status_code=400, detail="Invalid days parameter. Must be between 1 and 30.")

    result = mindshare_service.collect_all_project_tweets(db, days)
    recent = mindshare_service.update_recent_tweet_metrics(db)
    mindshare_service.calculate_mindshare_metrics(db)
    return {
        "success": True,
        "message": (
            f"Collected {result['tweetsCollected']} tweets ({result['newTweets']} new) "
            f"for {result['projectsProcessed']} projects"
        ),
        **result,
        "recentTweetsChecked": recent["tweetsChecked"],
        "recentTweetsUpdated": recent["tweetsUpdated"],
    }


@router.post("/projects/{project_id}/collect-tweets", dependencies=[Depends(require_admin)])
def collect_project_tweets(project_id: int, days: int = Body(7, embed=True), db: Session = Depends(get_db)):
    if days < 1 or days > 30:
        raise HTTPException(status_code=400, detail="Invalid days parameter. Must be between 1 and 30.")
    project = _get_project(db, project_id)
    result = mindshare_service.collect_project_tweets(db, project, days)
    return {"success": True, "project_id": project.id, "project_name": project.name, **result}


@router.post("/calculate-metrics", dependencies=[Depends(require_admin)])
def calculate_metrics(payload: Optional[CalculateMetricsRequest] = None, db: Session = Depends(get_db)):
    start = payload.start_date.replace(tzinfo=None) if payload and payload.start_date else None
    end = payload.end_date.replace(tzinfo=None) if payload and payload.end_date else None
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="startDate must be before endDate")

    rows = mindshare_service.calculate_mindshare_metrics(db, start, end)
    return {
        "success": True,
        "projectsUpdated": len(rows),
        "metrics": [
            {
                "project_id": r.project_id,
                "tweet_count": r.tweet_count,
                "views": r.views,
                "likes": r.likes,
                "retweets": r.retweets,
                "replies": r.replies,
                "engagement_rate": r.engagement_rate,
                "share_percentage": r.share_percentage,
                "start_date": r.start_date.isoformat(),
                "end_date": r.end_date.isoformat(),
            }
            for r in rows
        ],
    }
