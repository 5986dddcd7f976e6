from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from giverep.auth.admin import require_admin
from giverep.database import get_db
from giverep.models.mindshare import MindshareProject
from giverep.models.project import LoyaltyProject, ProjectTag
from giverep.schemas.loyalty_schema import TagCreate, TagOut, TagUpdate


router = APIRouter(prefix="/api/tags", tags=["Tags"])


def _name_taken(db: Session, name: str, exclude_id: int = None) -> bool:
    query = db.query(ProjectTag).filter(func.lower(ProjectTag.name) == name.strip().lower())
    if exclude_id is not None:
        query = query.filter(ProjectTag.id != exclude_id)
    return query.first() is not None


@router.get("/", response_model=List[TagOut])
def list_tags(include_hidden: bool = False, db: Session = Depends(get_db)):
    query = db.query(ProjectTag)
    if not include_hidden:
        query = query.filter(ProjectTag.visible.is_(True))
    return query.order_by(ProjectTag.name.asc()).all()


@router.post("/", response_model=TagOut, status_code=201, dependencies=[Depends(require_admin)])
def create_tag(payload: TagCreate, db: Session = Depends(get_db)):
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="Tag name is required")
    if _name_taken(db, payload.name):
        raise HTTPException(status_code=409, detail="Tag name already exists")

    tag = ProjectTag(name=payload.name.strip(), description=payload.description, visible=payload.visible)
    db.add(tag)
    db.commit()
    db.refresh(tag)
    return tag


@router.put("/{tag_id}", response_model=TagOut, dependencies=[Depends(require_admin)])
def update_tag(tag_id: int, payload: TagUpdate, db: Session = Depends(get_db)):
    tag = db.query(ProjectTag).get(tag_id)
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")
    if payload.name is not None:
        if _name_taken(db, payload.name, exclude_id=tag.id):
            raise HTTPException(status_code=409, detail="Tag name already exists")
        tag.name = payload.name.strip()
    if payload.description is not None:
        tag.description = payload.description
    if payload.visible is not None:
        tag.visible = payload.visible
    db.commit()
    db.refresh(tag)
    return tag


@router.delete("/{tag_id}", dependencies=[Depends(require_admin)])
def delete_tag(tag_id: int, db: Session = Depends(get_db)):
    tag = db.query(ProjectTag).get(tag_id)
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")

    # tag_ids is a JSON list, so detach in Python
    for model in (LoyaltyProject, MindshareProject):
        for project in db.query(model).all():
            if tag_id in (project.tag_ids or []):
                project.tag_ids = [t for t in project.tag_ids if t != tag_id]

    tag_name = tag.name
    db.delete(tag)
    db.commit()
    return {"message": f"Tag {tag_name} was successfully deleted"}
