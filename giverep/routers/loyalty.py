from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from sqlalchemy.orm import Session

from giverep.auth.admin import hash_password, require_admin, require_admin_or_loyalty_manager
from giverep.auth.twitter_identity import verify_twitter_identity
from giverep.core.logging import get_logger
from giverep.database import get_db
from giverep.models.project import LoyaltyProject
from giverep.schemas.loyalty_schema import MembershipRequest
from giverep.services import loyalty as loyalty_service
from giverep.utils.s3 import upload_image_to_s3


logger = get_logger(__name__)

router = APIRouter(prefix="/api/loyalty", tags=["Loyalty"])


def _get_project(db: Session, project_id: int) -> LoyaltyProject:
    project = db.query(LoyaltyProject).get(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Loyalty project not found")
    return project


def _split_csv(value: Optional[str]) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field}, expected an ISO date")


def _parse_tag_ids(value: Optional[str]) -> list[int]:
    try:
        return [int(v) for v in _split_csv(value)]
    except ValueError:
        raise HTTPException(status_code=400, detail="tag_ids must be a comma separated list of integers")


def _verified_handle(request: Request, db: Session, handle: Optional[str]) -> str:
    verification = verify_twitter_identity(request, db, handle)
    if not verification.success:
        raise HTTPException(status_code=401, detail=verification.error)
    return handle.lstrip("@")


# ---------- Projects ----------

@router.get("/projects")
def list_projects(db: Session = Depends(get_db)):
    projects = (
        db.query(LoyaltyProject)
        .filter(LoyaltyProject.is_active.is_(True))
        .order_by(LoyaltyProject.is_featured.desc(), LoyaltyProject.created_at.desc())
        .all()
    )
    counts = loyalty_service.member_counts(db, [p.id for p in projects])
    return [loyalty_service.project_to_dict(p, counts.get(p.id, 0)) for p in projects]


@router.get("/projects/{project_id}")
def get_project(project_id: int, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    counts = loyalty_service.member_counts(db, [project.id])
    return loyalty_service.project_to_dict(project, counts.get(project.id, 0))


@router.post("/projects", status_code=201, dependencies=[Depends(require_admin)])
def create_project(
    name: str = Form(...),
    description: Optional[str] = Form(None),
    twitter_handle: Optional[str] = Form(None),
    website_url: Optional[str] = Form(None),
    banner_url: Optional[str] = Form(None),
    is_featured: bool = Form(False),
    is_incentivized: bool = Form(False),
    price_per_view: Optional[float] = Form(None),
    incentive_budget: Optional[float] = Form(None),
    min_follower_count: int = Form(0),
    hashtags: Optional[str] = Form(None),
    tag_ids: Optional[str] = Form(None),
    start_time: Optional[str] = Form(None),
    end_time: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    logo: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
):
    if not name.strip():
        raise HTTPException(status_code=400, detail="Project name is required")

    project = LoyaltyProject(
        name=name.strip(),
        description=description,
        twitter_handle=twitter_handle.strip().lstrip("@") if twitter_handle else None,
        website_url=website_url,
        banner_url=banner_url,
        is_featured=is_featured,
        is_incentivized=is_incentivized,
        min_follower_count=min_follower_count,
        hashtags=_split_csv(hashtags),
        tag_ids=_parse_tag_ids(tag_ids),
        start_time=_parse_datetime(start_time, "start_time"),
        end_time=_parse_datetime(end_time, "end_time"),
    )
    if price_per_view is not None:
        project.price_per_view = price_per_view
    if incentive_budget is not None:
        project.incentive_budget = incentive_budget
    if password:
        project.password_hash = hash_password(password)
    if logo:
        project.logo_url = upload_image_to_s3(logo)

    db.add(project)
    db.commit()
    db.refresh(project)
    logger.info("Created loyalty project", extra={"project_id": project.id})
    return {"message": "Project successfully created", "project": loyalty_service.project_to_dict(project, 0)}


@router.put("/projects/{project_id}", dependencies=[Depends(require_admin_or_loyalty_manager)])
def update_project(
    project_id: int,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    twitter_handle: Optional[str] = Form(None),
    website_url: Optional[str] = Form(None),
    banner_url: Optional[str] = Form(None),
    is_active: Optional[bool] = Form(None),
    is_featured: Optional[bool] = Form(None),
    is_incentivized: Optional[bool] = Form(None),
    price_per_view: Optional[float] = Form(None),
    incentive_budget: Optional[float] = Form(None),
    min_follower_count: Optional[int] = Form(None),
    hashtags: Optional[str] = Form(None),
    tag_ids: Optional[str] = Form(None),
    start_time: Optional[str] = Form(None),
    end_time: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    logo: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
):
    project = _get_project(db, project_id)

    if logo:
        project.logo_url = upload_image_to_s3(logo)

    for key, value in {
        "name": name,
        "description": description,
        "website_url": website_url,
        "banner_url": banner_url,
        "is_active": is_active,
        "is_featured": is_featured,
        "is_incentivized": is_incentivized,
        "price_per_view": price_per_view,
        "incentive_budget": incentive_budget,
        "min_follower_count": min_follower_count,
    }.items():
        if value is not None:
            setattr(project, key, value)

    if twitter_handle is not None:
        project.twitter_handle = twitter_handle.strip().lstrip("@") or None
    if hashtags is not None:
        project.hashtags = _split_csv(hashtags)
    if tag_ids is not None:
        project.tag_ids = _parse_tag_ids(tag_ids)
    if start_time is not None:
        project.start_time = _parse_datetime(start_time, "start_time")
    if end_time is not None:
        project.end_time = _parse_datetime(end_time, "end_time")
    if password:
        project.password_hash = hash_password(password)

    db.commit()
    db.refresh(project)
    return loyalty_service.project_to_dict(project)


@router.delete("/projects/{project_id}", dependencies=[Depends(require_admin)])
def delete_project(project_id: int, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    project_name = project.name
    loyalty_service.delete_project(db, project)
    return {"message": f"Project {project_name} was successfully deleted"}


# ---------- Membership ----------

@router.post("/projects/{project_id}/join")
def join_project(project_id: int, payload: MembershipRequest, request: Request, db: Session = Depends(get_db)):
    handle = _verified_handle(request, db, payload.twitter_handle)
    project = _get_project(db, project_id)
    member = loyalty_service.join_project(db, project, handle)
    return {
        "success": True,
        "message": f"Joined {project.name}",
        "member": {
            "project_id": member.project_id,
            "twitter_handle": member.twitter_handle,
            "joined_at": member.joined_at.isoformat() if member.joined_at else None,
        },
    }


@router.post("/projects/{project_id}/leave")
def leave_project(project_id: int, payload: MembershipRequest, request: Request, db: Session = Depends(get_db)):
    handle = _verified_handle(request, db, payload.twitter_handle)
    project = _get_project(db, project_id)
    loyalty_service.leave_project(db, project, handle)
    return {"success": True, "message": f"Left {project.name}"}


@router.get("/user-memberships")
def get_user_memberships(handle: str = Query(...), db: Session = Depends(get_db)):
    return loyalty_service.get_user_memberships(db, handle)


@router.post("/user-memberships")
def post_user_memberships(payload: MembershipRequest, db: Session = Depends(get_db)):
    if not payload.twitter_handle:
        raise HTTPException(status_code=400, detail="Twitter handle is required")
    return loyalty_service.get_user_memberships(db, payload.twitter_handle)


# ---------- Leaderboard & stats ----------

@router.get("/projects/{project_id}/leaderboard")
def get_leaderboard(
    project_id: int,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    project = _get_project(db, project_id)
    try:
        start, end = loyalty_service.parse_date_range(startDate, endDate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    entries = loyalty_service.get_project_leaderboard(
        db, project, start or project.start_time, end or project.end_time
    )
    offset = (page - 1) * limit
    return {
        "leaderboard": [
            {"rank": offset + i + 1, **entry} for i, entry in enumerate(entries[offset:offset + limit])
        ],
        "pagination": {"page": page, "limit": limit, "total": len(entries)},
    }


@router.get("/projects/{project_id}/user-position")
def get_user_position(project_id: int, handle: str = Query(...), db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    position = loyalty_service.get_user_position(db, project, handle)
    return {"position": position["rank"] if position else None, "entry": position}


@router.get("/projects/{project_id}/members")
def get_members(project_id: int, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    return loyalty_service.get_members(db, project)


@router.get("/projects/{project_id}/tweets")
def get_tweets(
    project_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    project = _get_project(db, project_id)
    return loyalty_service.get_project_tweets(db, project, page, limit)


@router.get("/projects/{project_id}/stats")
def get_stats(project_id: int, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    return loyalty_service.get_project_stats(db, project)


# ---------- Jobs ----------

@router.post("/projects/{project_id}/collect-tweets", dependencies=[Depends(require_admin_or_loyalty_manager)])
def collect_tweets(project_id: int, days: int = Query(7, ge=1, le=30), db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    return {"success": True, **loyalty_service.collect_loyalty_tweets(db, project, days)}


@router.post("/projects/{project_id}/calculate-metrics", dependencies=[Depends(require_admin_or_loyalty_manager)])
def calculate_metrics(project_id: int, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    return {"success": True, **loyalty_service.calculate_project_metrics(db, project)}


@router.post("/deactivate-expired", dependencies=[Depends(require_admin)])
def deactivate_expired(db: Session = Depends(get_db)):
    count = loyalty_service.deactivate_expired_projects(db)
    return {"success": True, "deactivated": count}
