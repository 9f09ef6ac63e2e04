"""Category API routes."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import DuplicateError
from app.models.category import Category
from app.schemas.category import CategoryCreate, CategoryOut

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    if db.query(Category.category_id).filter(Category.name == payload.name).first():
        raise DuplicateError("Category already exists", name=payload.name)
    category = Category(name=payload.name)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info("Created category %s (%s)", category.category_id, category.name)
    return category


@router.get("/", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.name).all()
