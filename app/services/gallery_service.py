from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import GalleryPhoto
from app.services.table_service import delete_from_table, fetch_from_table, insert_into_table, update_in_table


def parse_tags(raw: str | None) -> list[str]:
    tags: list[str] = []
    for chunk in (raw or '').split(','):
        tag = chunk.strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def list_gallery_photos(db: Session, category: str | None = None, featured_only: bool = False) -> list[dict]:
    photos = fetch_from_table(
        db,
        'gallery_photos',
        filters={'category': category or None, 'is_featured': True if featured_only else None},
        order_by='created_at',
        ascending=False,
    )
    return sorted(photos, key=lambda photo: not photo['is_featured'])


def list_categories(db: Session) -> list[str]:
    return db.execute(
        select(GalleryPhoto.category).where(GalleryPhoto.category.is_not(None)).distinct().order_by(GalleryPhoto.category.asc())
    ).scalars().all()


def create_gallery_photo(
    db: Session,
    *,
    uploaded_by: int,
    photo_url: str,
    caption: str | None = None,
    category: str | None = None,
    tags: str | None = None,
    is_featured: bool = False,
) -> dict:
    photo_url = (photo_url or '').strip()
    if not photo_url:
        raise ValueError('Photo URL is required')
    return insert_into_table(
        db,
        'gallery_photos',
        {
            'uploaded_by': uploaded_by,
            'photo_url': photo_url,
            'caption': (caption or '').strip() or None,
            'category': (category or '').strip().lower() or None,
            'tags': parse_tags(tags),
            'is_featured': is_featured,
        },
    )


def update_gallery_photo(
    db: Session,
    photo_id: int,
    *,
    caption: str | None = None,
    category: str | None = None,
    tags: str | None = None,
    is_featured: bool | None = None,
) -> dict:
    if not fetch_from_table(db, 'gallery_photos', columns=['id'], filters={'id': photo_id}):
        raise ValueError('Photo not found')
    updates: dict = {}
    if caption is not None:
        updates['caption'] = caption.strip() or None
    if category is not None:
        updates['category'] = category.strip().lower() or None
    if tags is not None:
        updates['tags'] = parse_tags(tags)
    if is_featured is not None:
        updates['is_featured'] = is_featured
    return update_in_table(db, 'gallery_photos', photo_id, updates)


def delete_gallery_photo(db: Session, photo_id: int) -> None:
    delete_from_table(db, 'gallery_photos', photo_id)
